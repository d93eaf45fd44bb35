from .celery import celery_app

# 'from pm_project import *' only exports celery_app
__all__ = ("celery_app",)

""" Start a worker with "celery -A pm_project worker -l info"
    (run from the directory holding manage.py). """
