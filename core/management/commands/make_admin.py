from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError


class Command(BaseCommand):
    help = "Grant the admin role to a user by email, creating the account if it does not exist."

    def add_arguments(self, parser):
        parser.add_argument("--email", required=True, help="Email of the user to promote.")
        parser.add_argument("--name", default="", help="Display name used when the account is created.")
        parser.add_argument(
            "--password",
            default=None,
            help="Password for a newly created account. Existing passwords are left untouched.",
        )

    def handle(self, *args, **options):
        User = get_user_model()
        email = (options["email"] or "").strip().lower()
        if not email or "@" not in email:
            raise CommandError("A valid --email is required.")

        user = User.objects.filter(email__iexact=email).first()
        if user is None:
            user = User(username=email, email=email, name=options["name"])
            if options["password"]:
                user.set_password(options["password"])
            else:
                user.set_unusable_password()
            user.role = User.Role.ADMIN
            user.save()
            self.stdout.write(self.style.SUCCESS(f"Created admin {email}."))
            return

        if user.role == User.Role.ADMIN:
            self.stdout.write(self.style.WARNING(f"{email} is already an admin."))
            return

        previous_role = user.role or "none"
        user.role = User.Role.ADMIN
        user.save(update_fields=["role", "updated_at"])
        self.stdout.write(self.style.SUCCESS(f"Promoted {email} from {previous_role} to admin."))
