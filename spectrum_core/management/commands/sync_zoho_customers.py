from django.core.management.base import BaseCommand, CommandError

from spectrum_core.models import Laboratory
from spectrum_core.services.zoho_sync import sync_customers


class Command(BaseCommand):
    help = "Pull Zoho Books customers into the customer master. Optional: --lab <code>"

    def add_arguments(self, parser):
        parser.add_argument("--lab", default="", help="Only sync this laboratory code")

    def handle(self, *args, **options):
        labs = Laboratory.objects.filter(is_active=True)
        if options["lab"]:
            labs = labs.filter(code=options["lab"].strip().upper())
            if not labs.exists():
                raise CommandError(f"Unknown laboratory: {options['lab']}")

        failures = 0
        for lab in labs:
            if not lab.zoho_configured:
                self.stdout.write(f"{lab.code}: Zoho Books not configured, skipped")
                continue
            result = sync_customers(lab)
            if result["success"]:
                self.stdout.write(self.style.SUCCESS(f"{lab.code}: {result['message']}"))
            else:
                failures += 1
                self.stderr.write(f"{lab.code}: {result['message']}")

        if failures:
            raise CommandError(f"{failures} laboratory sync(s) failed")
