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
    # Ledger.objects.active(company)


# Attach TenantQuerySet to .objects
# every model using TenantManager can call:
# Voucher.objects.for_company(company)
class TenantManager(models.Manager.from_queryset(TenantQuerySet)):
    pass


class BillQuerySet(TenantQuerySet):
    def outstanding(self, company, bill_type=None):
        """Open/partial bills that still carry a balance."""
        qs = self.filter(
            company=company,
            status__in=["OPEN", "PARTIAL"],
            outstanding_amount__gt=0,
        )
        if bill_type:
            qs = qs.filter(bill_type=bill_type)
        return qs


class BillManager(models.Manager.from_queryset(BillQuerySet)):
    pass
