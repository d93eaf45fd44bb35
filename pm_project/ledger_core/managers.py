from django.db import models

# -----------------------------------------
# Scope queries to one residence
# -----------------------------------------
class ResidenceQuerySet(models.QuerySet):
    def for_residence(self, residence_id):  # Add queryset helper
        return self.filter(residence_id=residence_id)

    def instances(self):
        # only concrete monthly requests, never templates
        return self.filter(is_template=False)

    def templates(self):
        return self.filter(is_template=True)

    def for_month(self, month, year):
        return self.filter(month=month, year=year)

    # Enables query:
    # MonthlyRequest.objects.for_residence(rid).instances().for_month(9, 2025)


class ResidenceManager(models.Manager):
    def get_queryset(self):  # every model gets ResidenceQuerySet
        return ResidenceQuerySet(self.model, using=self._db)

    def for_residence(self, residence_id):
        return self.get_queryset().for_residence(residence_id)

    def instances(self):
        return self.get_queryset().instances()

    def templates(self):
        return self.get_queryset().templates()


class AccountQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)

    def of_type(self, ac_type):
        return self.filter(ac_type=ac_type)

    def vendor_payables(self):
        # sub-ledgers nested under the master payable
        return self.filter(parent__code="2000", ac_type="Liability")


class AccountManager(models.Manager):
    def get_queryset(self):
        return AccountQuerySet(self.model, using=self._db)

    def active(self):
        return self.get_queryset().active()

    def vendor_payables(self):
        return self.get_queryset().vendor_payables()
