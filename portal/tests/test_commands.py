from datetime import timedelta
from decimal import Decimal
from io import StringIO

import pytest
from django.core.management import call_command
from django.utils import timezone

from portal.models import Appointment, Invoice, Payment, Role, User
from portal.services import billing

pytestmark = pytest.mark.django_db


def test_seed_portal_is_idempotent():
    out = StringIO()
    call_command('seed_portal', stdout=out)
    assert 'Seed data ready.' in out.getvalue()
    counts = (User.objects.count(), Appointment.objects.count(), Invoice.objects.count())

    call_command('seed_portal', stdout=StringIO())
    assert (User.objects.count(), Appointment.objects.count(), Invoice.objects.count()) == counts

    admin = User.objects.get(email='admin@hospital.com')
    assert admin.role == Role.ADMIN and admin.check_password('admin123')
    assert User.objects.filter(role=Role.DOCTOR).count() == 5
    assert Appointment.objects.filter(status='scheduled').count() == 5
    # stored invoices are internally consistent
    billing.aggregate(Invoice.objects.all())
    # paid amounts are backed by payment rows
    for invoice in Invoice.objects.all():
        assert sum((p.amount for p in invoice.payments.all()), Decimal('0')) == invoice.paid_amount
    assert Payment.objects.count() == 2
    sarah = Appointment.objects.filter(doctor__email='sarah.johnson@hospital.com').order_by('date')
    assert [a.queue_position for a in sarah] == [1, 2]


def test_ensure_test_users_resets_accounts():
    call_command('ensure_test_users', stdout=StringIO())
    nurse = User.objects.get(email='nurse1@test.local')
    nurse.is_active = False
    nurse.set_password('something-else')
    nurse.save()

    call_command('ensure_test_users', stdout=StringIO())
    nurse.refresh_from_db()
    assert nurse.is_active and nurse.check_password('test12345')
    assert set(User.objects.values_list('role', flat=True)) == set(Role.values)


def test_ensure_test_users_never_changes_a_role():
    squatter = User.objects.create_user(email='admin1@test.local', password='Zebra-Lamp-42',
                                        name='Not An Admin', role=Role.PATIENT)
    out = StringIO()
    call_command('ensure_test_users', stdout=out)
    squatter.refresh_from_db()
    assert squatter.role == Role.PATIENT
    assert squatter.check_password('Zebra-Lamp-42')
    assert 'skipped: admin1@test.local' in out.getvalue()


def test_mark_overdue_invoices(patient):
    invoice = billing.create_invoice(patient_id=patient.id, total_amount='25.00')
    Invoice.objects.filter(pk=invoice.pk).update(due_date=timezone.now() - timedelta(hours=1))
    out = StringIO()
    call_command('mark_overdue_invoices', stdout=out)
    assert '1 invoices marked overdue' in out.getvalue()
    invoice.refresh_from_db()
    assert invoice.status == Invoice.STATUS_OVERDUE
