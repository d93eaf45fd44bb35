from dataclasses import dataclass

from django.conf import settings

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Actor:
    """The user performing an operation, as handed over by the user directory."""

    id: str
    email: str
    role: str = "user"

    @property
    def is_admin(self):
        return self.role == ADMIN_ROLE

    @property
    def can_approve(self):
        return self.role in approver_roles()


def approver_roles():
    return set(getattr(settings, "LEDGER_APPROVER_ROLES", ()))


# used for postings generated by background jobs
SYSTEM_ACTOR = Actor(id="system", email="system@localhost", role=ADMIN_ROLE)
