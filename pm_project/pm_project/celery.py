from __future__ import annotations
import os
from celery import Celery

# ensure Django settings are set for Celery
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "pm_project.settings")

celery_app = Celery("pm_project")

# read config from Django settings, using CELERY_ prefix
celery_app.config_from_object("django.conf:settings", namespace="CELERY")

# picks up ledger_core.tasks (notifications, overdue flagging)
celery_app.autodiscover_tasks()
