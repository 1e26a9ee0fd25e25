from django.core.management.base import BaseCommand, CommandError

from ledger_core.models import Company
from ledger_core.services.numbering import ensure_default_voucher_types


class Command(BaseCommand):
    help = "Seeds the default voucher types (each with a Default series) for a company."

    # Define command-line argument
    def add_arguments(self, parser):
        parser.add_argument(
            "--company-slug",  # Define flag
            type=str,
            required=True,
            help="Slug of the company to seed",
        )

    def handle(self, *args, **options):
        slug = options["company_slug"]  # Read argument from add_arguments()

        try:
            company = Company.objects.get(slug=slug)
        except Company.DoesNotExist:
            raise CommandError(f"Company {slug!r} does not exist")

        self.stdout.write(self.style.NOTICE(
            f"Seeding voucher types for {company.name}..."))
        voucher_types = ensure_default_voucher_types(company)
        for vt in voucher_types:
            self.stdout.write(f"  {vt.name} ({vt.prefix or ''}{vt.next_number})")
        self.stdout.write(self.style.SUCCESS(
            f"{len(voucher_types)} voucher types ready."))
