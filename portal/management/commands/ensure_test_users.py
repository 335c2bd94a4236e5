from django.core.management.base import BaseCommand

from portal.models import Role, User

PASSWORD = "test12345"


class Command(BaseCommand):
    help = f"Ensure one active test user per role exists with password={PASSWORD} (idempotent)."

    def handle(self, *args, **opts):
        for role in Role.values:
            email = f"{role}1@test.local"
            user = User.objects.filter(email=email).first()
            if user is None:
                User.objects.create_user(email=email, password=PASSWORD, name=f"Test {role.title()}", role=role)
            elif user.role != role:
                # roles are fixed at creation
                self.stdout.write(self.style.WARNING(f"skipped: {email} has role {user.role}, expected {role}"))
                continue
            else:
                user.set_password(PASSWORD)
                user.is_active = True
                user.save(update_fields=["password", "is_active"])
            self.stdout.write(self.style.SUCCESS(f"ok: {email} ({role})"))
        self.stdout.write(self.style.SUCCESS("All test users ensured."))
