from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from spectrum_core.models import Laboratory, UserRole
from spectrum_core.seed import seed_laboratory


class Command(BaseCommand):
    help = "Create (or update) a laboratory with sequence prefixes and sample type templates"

    def add_arguments(self, parser):
        parser.add_argument("code", help="Laboratory code, e.g. SPECTRUM")
        parser.add_argument("--name", default="", help="Laboratory name (defaults to the code)")
        parser.add_argument("--admin", default="", help="Username to grant the Admin role in this lab")
        parser.add_argument("--no-sample-types", action="store_true", help="Only create the counters")

    def handle(self, *args, **options):
        code = options["code"].strip().upper()
        lab, created = Laboratory.objects.get_or_create(
            code=code,
            defaults={"name": options["name"] or code},
        )
        self.stdout.write(f"{'Created' if created else 'Using'} laboratory {lab}")

        result = seed_laboratory(lab, sample_types=not options["no_sample_types"])
        self.stdout.write(
            f"Counters added: {result['format_ids']}, sample types added: {result['sample_types']}"
        )

        username = (options["admin"] or "").strip()
        if username:
            User = get_user_model()
            try:
                user = User.objects.get(username=username)
            except User.DoesNotExist:
                raise CommandError(f"User '{username}' does not exist")
            UserRole.objects.update_or_create(
                user=user,
                laboratory=lab,
                defaults={"role": UserRole.Role.ADMIN},
            )
            self.stdout.write(f"{username} is Admin of {lab.code}")

        self.stdout.write(self.style.SUCCESS("Done"))
