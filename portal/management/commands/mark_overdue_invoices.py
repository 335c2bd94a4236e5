from django.core.management.base import BaseCommand

from portal.services.billing import refresh_overdue


class Command(BaseCommand):
    help = "Mark pending or part-paid invoices past their due date as overdue."

    def handle(self, *args, **options):
        changed = refresh_overdue()
        self.stdout.write(self.style.SUCCESS(f"{changed} invoices marked overdue"))
