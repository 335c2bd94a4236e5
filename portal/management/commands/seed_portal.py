"""
Management command to load demo data for the care portal.

Idempotent: users are matched by email, appointments and invoices are
only created when the database has none.
"""
from datetime import datetime, time, timedelta
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from portal.models import Appointment, Invoice, Role, User
from portal.services import appointments, billing

ADMIN = ("admin@hospital.com", "System Admin", "admin123")

DOCTORS = [
    ("sarah.johnson@hospital.com", "Sarah Johnson", "+1-555-0101"),
    ("michael.chen@hospital.com", "Michael Chen", "+1-555-0102"),
    ("emily.rodriguez@hospital.com", "Emily Rodriguez", "+1-555-0103"),
    ("james.wilson@hospital.com", "James Wilson", "+1-555-0104"),
    ("lisa.park@hospital.com", "Lisa Park", "+1-555-0105"),
]

PATIENTS = [
    ("john.smith@email.com", "John Smith", "+1-555-1001"),
    ("maria.garcia@email.com", "Maria Garcia", "+1-555-1003"),
    ("robert.j@email.com", "Robert Johnson", "+1-555-1005"),
    ("emma.davis@email.com", "Emma Davis", "+1-555-1007"),
    ("william.b@email.com", "William Brown", "+1-555-1009"),
]

STAFF = [
    ("nancy.wilson@hospital.com", "Nancy Wilson", "+1-555-4001", Role.NURSE),
    ("patricia.brown@hospital.com", "Patricia Brown", "+1-555-4002", Role.NURSE),
    ("kevin.anderson@hospital.com", "Kevin Anderson", "+1-555-4003", Role.RECEPTIONIST),
    ("sandra.martinez@hospital.com", "Sandra Martinez", "+1-555-4004", Role.PHARMACIST),
]

# (patient index, doctor index, day offset, hour, minute, reason)
APPOINTMENTS = [
    (0, 0, 0, 10, 0, "Annual heart checkup"),
    (1, 2, 0, 11, 30, "Asthma consultation"),
    (2, 0, 0, 14, 0, "Diabetes cardiovascular screening"),
    (3, 2, 1, 9, 0, "Vaccination appointment"),
    (4, 3, 1, 15, 30, "Headache evaluation"),
]

# (patient index, total, paid, days until due)
INVOICES = [
    (0, "150.00", "150.00", 14),
    (1, "120.00", "40.00", 14),
    (2, "350.00", "0.00", 30),
    (4, "200.00", "0.00", 7),
]

DEMO_PASSWORD = "password123"


class Command(BaseCommand):
    help = "Load demo users, appointments and invoices (idempotent)."

    def handle(self, *args, **options):
        with transaction.atomic():
            admin = self._user(ADMIN[0], ADMIN[1], Role.ADMIN, password=ADMIN[2], is_staff=True)
            doctors = [self._user(email, name, Role.DOCTOR, phone=phone) for email, name, phone in DOCTORS]
            patients = [self._user(email, name, Role.PATIENT, phone=phone) for email, name, phone in PATIENTS]
            for email, name, phone, role in STAFF:
                self._user(email, name, role, phone=phone)
            self._appointments(admin, patients, doctors)
            self._invoices(admin, patients)
        self.stdout.write(self.style.SUCCESS("Seed data ready."))

    def _user(self, email, name, role, *, password=DEMO_PASSWORD, phone="", is_staff=False):
        user = User.objects.filter(email=email).first()
        if user is not None:
            return user
        user = User.objects.create_user(
            email=email, password=password, name=name, role=role, phone=phone, is_staff=is_staff,
        )
        self.stdout.write(f"created {role}: {email}")
        return user

    def _appointments(self, admin, patients, doctors):
        if Appointment.objects.exists():
            self.stdout.write("appointments exist, skipping")
            return
        today = timezone.localdate()
        for p, d, offset, hour, minute, reason in APPOINTMENTS:
            when = timezone.make_aware(datetime.combine(today + timedelta(days=offset), time(hour, minute)))
            appointments.book(
                patient_id=patients[p].id, doctor_id=doctors[d].id, date=when, reason=reason,
                time_slot=f"{hour:02d}:{minute:02d}-{hour + 1:02d}:{minute:02d}", actor=admin,
            )
        self.stdout.write(self.style.SUCCESS(f"created {len(APPOINTMENTS)} appointments"))

    def _invoices(self, admin, patients):
        if Invoice.objects.exists():
            self.stdout.write("invoices exist, skipping")
            return
        now = timezone.now()
        for n, (p, total, paid, due_days) in enumerate(INVOICES, start=1):
            invoice = billing.create_invoice(
                patient_id=patients[p].id, total_amount=total, invoice_number=f"INV-DEMO-{n:04d}",
                invoice_date=now, due_date=now + timedelta(days=due_days), actor=admin,
            )
            # amounts paid so far go through the payment ledger
            if Decimal(paid) > 0:
                billing.record_payment(invoice.id, paid, method="card", reference="seed", actor=admin)
        self.stdout.write(self.style.SUCCESS(f"created {len(INVOICES)} invoices"))
