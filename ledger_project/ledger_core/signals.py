from django.core.exceptions import ValidationError
from django.db.models.signals import pre_delete
from django.dispatch import receiver

from .models import Bill, Ledger, Voucher, VoucherEntry, VoucherType

""" Vouchers are never hard-deleted; corrections are posted as reversals."""


# pre_delete signal auto-fires just before Django deletes a model instance
@receiver(pre_delete, sender=Voucher)
def prevent_delete_voucher(sender, instance, **kwargs):
    raise ValidationError(
        f"Cannot delete voucher {instance.voucher_number}; post a reversing journal instead."
    )


@receiver(pre_delete, sender=VoucherEntry)
def prevent_delete_voucher_entry(sender, instance, **kwargs):
    raise ValidationError("Cannot delete voucher entries.")


"""Block bill deletion if any settlements are applied."""


@receiver(pre_delete, sender=Bill)
def prevent_delete_bill_with_settlements(sender, instance, **kwargs):
    if instance.settlements.exists():
        raise ValidationError("Cannot delete bill with applied settlements.")


"""Block deletion if a voucher type numbers existing vouchers."""


@receiver(pre_delete, sender=VoucherType)
def prevent_delete_voucher_type_in_use(sender, instance, **kwargs):
    if Voucher.objects.filter(voucher_type=instance).exists():
        raise ValidationError(
            f"Cannot delete voucher type {instance.name}; vouchers use it."
        )


"""Block deletion if the ledger has ever been named in a voucher entry."""


@receiver(pre_delete, sender=Ledger)
def prevent_delete_ledger_with_entries(sender, instance, **kwargs):
    used = VoucherEntry.objects.filter(
        company_id=instance.company_id, ledger_name__iexact=instance.name
    )
    if used.exists():
        raise ValidationError("Cannot delete ledger used in voucher entries.")
