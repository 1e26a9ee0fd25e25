import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F

from ..exceptions import NotFoundError, storage_errors
from ..models import (NumberingBehavior, NumberingMethod, VoucherCategory,
                      VoucherNumberingSeries, VoucherType)

logger = logging.getLogger(__name__)

# Seeded for a tenant that has no voucher types yet
DEFAULT_VOUCHER_TYPES = [
    ("Payment", "PMT", VoucherCategory.PAYMENT, "PMT/"),
    ("Receipt", "RCT", VoucherCategory.RECEIPT, "RCT/"),
    ("Contra", "CTR", VoucherCategory.CONTRA, "CTR/"),
    ("Journal", "JRN", VoucherCategory.JOURNAL, "JRN/"),
    ("Sales", "SAL", VoucherCategory.SALES, "SAL/"),
    ("Purchase", "PUR", VoucherCategory.PURCHASE, "PUR/"),
    ("Debit Note", "DN", VoucherCategory.DEBIT_NOTE, "DN/"),
    ("Credit Note", "CN", VoucherCategory.CREDIT_NOTE, "CN/"),
]

DEFAULT_SERIES_NAME = "Default"

# Fields callers may set through create/update
NUMBERING_FIELDS = (
    "prefix",
    "suffix",
    "numbering_method",
    "numbering_behavior",
    "allow_manual_override",
    "allow_duplicate_numbers",
)


def _choice(value, choices, field):
    if value not in choices.values:
        raise ValidationError(f"Invalid {field}: {value!r}")
    return value


def _positive_int(value, field):
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")
    if number < 1:
        raise ValidationError(f"{field} must be at least 1")
    return number


def _numbering_values(data):
    values = {k: data[k] for k in NUMBERING_FIELDS if k in data}
    if "numbering_method" in values:
        _choice(values["numbering_method"], NumberingMethod, "numbering_method")
    if "numbering_behavior" in values:
        _choice(values["numbering_behavior"], NumberingBehavior, "numbering_behavior")
    return values


# ----------------------------
# Number reservation
# ----------------------------
def reserve_number(company, voucher_type_id, series_id=None):
    """
    Hand out the next voucher number of a type (or one of its series).

    The counter is bumped by a single conditional UPDATE before it is read,
    so the row stays write-locked until the surrounding transaction ends and
    no two transactions can observe the same value. The reserved sequence is
    the bumped value minus one.

    Call inside the transaction that stores the voucher: a rollback
    returns the number to the pool.
    """
    if series_id:
        counters = VoucherNumberingSeries.objects.filter(
            pk=series_id, company=company, voucher_type_id=voucher_type_id
        )
    else:
        counters = VoucherType.objects.filter(pk=voucher_type_id, company=company)

    with transaction.atomic():
        # UPDATE ... SET next_number = next_number + 1 WHERE id = ? AND company_id = ?
        if counters.update(next_number=F("next_number") + 1) == 0:
            if series_id:
                raise NotFoundError(f"Numbering series {series_id} not found")
            raise NotFoundError(f"Voucher type {voucher_type_id} not found")

        counter = counters.get()

    sequence = counter.next_number - 1
    fallback = counter.voucher_type if series_id else None
    number = counter.format_number(sequence, fallback=fallback)

    logger.debug(
        "Reserved voucher number %s", number,
        extra={"voucher_type_id": voucher_type_id, "series_id": series_id},
    )
    return number


def get_next_voucher_number(company, voucher_type_id, series_id=None):
    """Reserve a number outside voucher creation (e.g. pre-printed stationery)."""
    with storage_errors("reserve voucher number"), transaction.atomic():
        return reserve_number(company, voucher_type_id, series_id)


# ----------------------------
# Voucher type administration
# ----------------------------
def ensure_default_voucher_types(company):
    """
    Seed Payment, Receipt, Contra, Journal, Sales, Purchase, Debit Note
    and Credit Note (each with a "Default" series) for a tenant without
    any voucher types. Returns the tenant's voucher types.
    """
    with storage_errors("seed voucher types"), transaction.atomic():
        if VoucherType.objects.for_company(company).exists():
            return list_voucher_types(company)

        for name, abbreviation, category, prefix in DEFAULT_VOUCHER_TYPES:
            vt = VoucherType.objects.create(
                company=company,
                name=name,
                abbreviation=abbreviation,
                category=category,
                prefix=prefix,
                is_default=True,
            )
            VoucherNumberingSeries.objects.create(
                company=company,
                voucher_type=vt,
                name=DEFAULT_SERIES_NAME,
                is_default=True,
            )

    logger.info("Seeded default voucher types", extra={"company": company.slug})
    return list_voucher_types(company)


def list_voucher_types(company):
    return list(
        VoucherType.objects.for_company(company)
        .prefetch_related("numbering_series")
        .order_by("name")
    )


def create_voucher_type(company, data):
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Voucher type name is required")
    category = _choice(data.get("category"), VoucherCategory, "category")
    values = _numbering_values(data)
    next_number = _positive_int(data.get("next_number", 1), "next_number")

    with storage_errors("create voucher type"), transaction.atomic():
        if VoucherType.objects.for_company(company).filter(name__iexact=name).exists():
            raise ValidationError(f"Voucher type {name!r} already exists")

        vt = VoucherType.objects.create(
            company=company,
            name=name,
            abbreviation=data.get("abbreviation"),
            category=category,
            next_number=next_number,
            **values,
        )
        # Every type starts with one default series
        VoucherNumberingSeries.objects.create(
            company=company,
            voucher_type=vt,
            name=DEFAULT_SERIES_NAME,
            is_default=True,
        )

    logger.info("Created voucher type %s", vt.name, extra={"company": company.slug})
    return vt


def update_voucher_type(company, voucher_type_id, data):
    """Partial update; only keys present in `data` change."""
    values = _numbering_values(data)
    if "next_number" in data:
        values["next_number"] = _positive_int(data["next_number"], "next_number")
    if "abbreviation" in data:
        values["abbreviation"] = data["abbreviation"]
    if "category" in data:
        values["category"] = _choice(data["category"], VoucherCategory, "category")

    with storage_errors("update voucher type"), transaction.atomic():
        try:
            vt = VoucherType.objects.select_for_update().get(
                pk=voucher_type_id, company=company
            )
        except VoucherType.DoesNotExist:
            raise NotFoundError(f"Voucher type {voucher_type_id} not found")

        if "name" in data:
            name = (data["name"] or "").strip()
            if not name:
                raise ValidationError("Voucher type name is required")
            clash = (
                VoucherType.objects.for_company(company)
                .filter(name__iexact=name)
                .exclude(pk=vt.pk)
            )
            if clash.exists():
                raise ValidationError(f"Voucher type {name!r} already exists")
            values["name"] = name

        for field, value in values.items():
            setattr(vt, field, value)
        vt.save(update_fields=list(values) or None)

    return vt


def create_numbering_series(company, voucher_type_id, data):
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Series name is required")
    start_number = _positive_int(data.get("start_number", 1), "start_number")
    values = _numbering_values(data)
    is_default = bool(data.get("is_default", False))

    with storage_errors("create numbering series"), transaction.atomic():
        try:
            vt = VoucherType.objects.get(pk=voucher_type_id, company=company)
        except VoucherType.DoesNotExist:
            raise NotFoundError(f"Voucher type {voucher_type_id} not found")

        if vt.numbering_series.filter(name__iexact=name).exists():
            raise ValidationError(f"Series {name!r} already exists for {vt.name}")

        # One default per type; demote the old one first
        if is_default:
            vt.numbering_series.filter(is_default=True).update(is_default=False)

        series = VoucherNumberingSeries.objects.create(
            company=company,
            voucher_type=vt,
            name=name,
            start_number=start_number,
            next_number=start_number,
            is_default=is_default,
            **values,
        )

    return series
