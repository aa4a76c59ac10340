import datetime

from django.db import models

# -----------------------------------------
# Enforce tenant scoping across all models
# that belong to a company
# -----------------------------------------
class TenantQuerySet(models.QuerySet):
    def for_company(self, company):         # Add queryset helper
        return self.filter(company=company) # Apply filter

    def active(self, company):
        return self.filter(
                            company=company, # enforce tenant scoping
                            is_active=True   # only fetch active records
                        )
    # Enables query:
    # Product.objects.active(company)


# Attach TenantQuerySet to .objects
class TenantManager(models.Manager.from_queryset(TenantQuerySet)):
    pass


# Status buckets used by reports and the dashboard
SETTLED_STATUSES = ("SENT", "ACCEPTED", "PARTIALLY_PAID", "PAID")
OUTSTANDING_STATUSES = ("SENT", "ACCEPTED", "CHANGES_REQUESTED", "PARTIALLY_PAID")
OVERDUE_STATUSES = ("SENT", "CHANGES_REQUESTED")


class TransactionQuerySet(TenantQuerySet):

    def of_type(self, *types):
        return self.filter(type__in=types)

    def settled(self):
        return self.filter(status__in=SETTLED_STATUSES)

    def outstanding(self):
        # unpaid documents that still carry a receivable/payable balance
        return self.filter(status__in=OUTSTANDING_STATUSES, balance_amount__gt=0)

    def overdue(self, today=None):
        """Derived on read: nothing is ever stored with status OVERDUE."""
        today = today or datetime.date.today()
        return self.filter(status__in=OVERDUE_STATUSES, due_date__lt=today)

    def in_range(self, start=None, end=None):
        qs = self
        if start:
            qs = qs.filter(date__gte=start)
        if end:
            qs = qs.filter(date__lte=end)
        return qs


class TransactionManager(models.Manager.from_queryset(TransactionQuerySet)):
    pass
