"""
Integration tests for the portal HTTP API.

These exercise the endpoints end to end through DRF's APIClient:
capability gating, ownership filtering, appointment status moves and
billing summaries.
"""
from datetime import timedelta
from decimal import Decimal

from django.core.cache import cache
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from ..models import Appointment, Invoice, Role, User
from ..services import appointments as engine
from ..services import billing

PASSWORD = 'Zebra-Lamp-42'


class PortalAPITests(APITestCase):
    def setUp(self) -> None:
        cache.clear()
        self.admin = self._user('admin@hospital.com', 'System Admin', Role.ADMIN)
        self.doctor = self._user('sarah.johnson@hospital.com', 'Sarah Johnson', Role.DOCTOR)
        self.other_doctor = self._user('james.wilson@hospital.com', 'James Wilson', Role.DOCTOR)
        self.receptionist = self._user('kevin.anderson@hospital.com', 'Kevin Anderson', Role.RECEPTIONIST)
        self.cashier = self._user('cashier@hospital.com', 'Carla Cash', Role.CASHIER)
        self.nurse = self._user('nancy.wilson@hospital.com', 'Nancy Wilson', Role.NURSE)
        self.patient = self._user('john.smith@email.com', 'John Smith', Role.PATIENT)
        self.other_patient = self._user('maria.garcia@email.com', 'Maria Garcia', Role.PATIENT)
        self.tomorrow = (timezone.now() + timedelta(days=1)).replace(microsecond=0)

    def _user(self, email, name, role) -> User:
        return User.objects.create_user(email=email, password=PASSWORD, name=name, role=role)

    def authenticate(self, user: User) -> APIClient:
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    def _book(self, patient=None, doctor=None) -> Appointment:
        return engine.book(patient_id=(patient or self.patient).id, doctor_id=(doctor or self.doctor).id,
                           date=self.tomorrow)

    # -- appointments (staff) ---------------------------------------------------

    def test_receptionist_books_for_a_patient(self):
        client = self.authenticate(self.receptionist)
        response = client.post('/api/appointments', {
            'patientId': self.patient.id, 'doctorId': self.doctor.id,
            'date': self.tomorrow.isoformat(), 'reason': 'Annual heart checkup',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['status'], 'scheduled')
        self.assertEqual(response.data['data']['doctorName'], 'Sarah Johnson')
        appt = Appointment.objects.get(pk=response.data['data']['id'])
        self.assertEqual(appt.created_by_id, self.receptionist.id)

    def test_booking_an_inactive_doctor_is_not_found(self):
        User.objects.filter(pk=self.doctor.pk).update(is_active=False)
        client = self.authenticate(self.receptionist)
        response = client.post('/api/appointments', {
            'patientId': self.patient.id, 'doctorId': self.doctor.id, 'date': self.tomorrow.isoformat(),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error']['code'], 'not_found')

    def test_booking_with_a_bad_date_is_rejected(self):
        client = self.authenticate(self.receptionist)
        response = client.post('/api/appointments', {
            'patientId': self.patient.id, 'doctorId': self.doctor.id, 'date': '2031-13-45T10:00:00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['ok'], False)
        self.assertEqual(response.data['error']['code'], 'validation_error')

    def test_doctor_lists_only_own_appointments(self):
        mine = self._book()
        self._book(patient=self.other_patient, doctor=self.other_doctor)
        response = self.authenticate(self.doctor).get('/api/appointments')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([a['id'] for a in response.data['data']], [mine.id])

        response = self.authenticate(self.receptionist).get('/api/appointments', {'status': 'scheduled'})
        self.assertEqual(response.data['pagination']['total'], 2)

    def test_doctor_runs_a_visit(self):
        appt = self._book()
        client = self.authenticate(self.doctor)
        self.assertEqual(client.post(f'/api/appointments/{appt.id}/start', format='json').status_code, 200)

        response = client.post(f'/api/appointments/{appt.id}/cancel', format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error']['code'], 'invalid_transition')
        self.assertEqual(response.data['error']['currentStatus'], 'in_progress')

        response = client.post(f'/api/appointments/{appt.id}/complete', {'reason': 'seen'}, format='json')
        self.assertEqual(response.data['data']['status'], 'completed')

        detail = client.get(f'/api/appointments/{appt.id}')
        history = [(t['from'], t['to']) for t in detail.data['data']['transitionHistory']]
        self.assertEqual(history, [(None, 'scheduled'), ('scheduled', 'in_progress'), ('in_progress', 'completed')])

    def test_roles_without_appointments_are_refused(self):
        response = self.authenticate(self.nurse).get('/api/appointments')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error']['code'], 'unauthorized')
        response = self.authenticate(self.patient).post('/api/appointments', {
            'patientId': self.other_patient.id, 'doctorId': self.doctor.id, 'date': self.tomorrow.isoformat(),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(Appointment.objects.exists())

    def test_anonymous_is_unauthenticated(self):
        response = APIClient().get('/api/appointments')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    # -- patient portal -----------------------------------------------------------

    def test_patient_books_for_self_only(self):
        client = self.authenticate(self.patient)
        response = client.post('/api/patient/appointments', {
            'doctorId': self.doctor.id, 'date': self.tomorrow.isoformat(), 'patientId': self.other_patient.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['patientId'], self.patient.id)
        self.assertEqual(response.data['data']['timeSlot'], '09:00-10:00')

    def test_patient_sees_upcoming_and_past(self):
        upcoming = self._book()
        done = engine.book(patient_id=self.patient.id, doctor_id=self.doctor.id,
                           date=timezone.now() - timedelta(days=3))
        engine.start(done.id)
        engine.complete(done.id)
        self._book(patient=self.other_patient)

        response = self.authenticate(self.patient).get('/api/patient/appointments')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data['data']
        self.assertEqual([a['id'] for a in data['upcoming']], [upcoming.id])
        self.assertEqual([a['id'] for a in data['past']], [done.id])
        self.assertEqual({a['id'] for a in data['all']}, {upcoming.id, done.id})

    def test_patient_cancels_own_appointment_once(self):
        appt = self._book()
        client = self.authenticate(self.patient)
        response = client.delete(f'/api/patient/appointments/{appt.id}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['status'], 'cancelled')
        self.assertTrue(Appointment.objects.filter(pk=appt.id).exists())

        response = client.delete(f'/api/patient/appointments/{appt.id}')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error']['currentStatus'], 'cancelled')

    def test_patient_books_today_then_cancels_it(self):
        client = self.authenticate(self.patient)
        response = client.post('/api/patient/appointments', {
            'doctorId': self.doctor.id, 'date': timezone.localdate().isoformat(), 'reason': 'Follow-up',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        appt_id = response.data['data']['id']
        self.assertEqual(response.data['data']['queuePosition'], 1)

        data = client.get('/api/patient/appointments').data['data']
        self.assertEqual([a['id'] for a in data['upcoming']], [appt_id])
        self.assertEqual(data['past'], [])

        response = client.delete(f'/api/patient/appointments/{appt_id}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        data = client.get('/api/patient/appointments').data['data']
        self.assertEqual(data['upcoming'], [])
        self.assertEqual(data['past'], [])
        self.assertEqual([(a['id'], a['status']) for a in data['all']], [(appt_id, 'cancelled')])

    def test_patient_cannot_cancel_someone_else(self):
        appt = self._book(patient=self.other_patient)
        response = self.authenticate(self.patient).delete(f'/api/patient/appointments/{appt.id}')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        appt.refresh_from_db()
        self.assertEqual(appt.status, 'scheduled')

    def test_doctor_directory_hides_inactive_doctors(self):
        User.objects.filter(pk=self.other_doctor.pk).update(is_active=False)
        response = self.authenticate(self.patient).get('/api/doctors')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([d['name'] for d in response.data['data']], ['Sarah Johnson'])

    # -- billing ------------------------------------------------------------------

    def test_cashier_invoices_and_collects(self):
        client = self.authenticate(self.cashier)
        response = client.post('/api/invoices', {
            'patientId': self.patient.id, 'totalAmount': '100.00', 'invoiceNumber': 'INV-100',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        invoice_id = response.data['data']['id']

        response = client.post(f'/api/invoices/{invoice_id}/payments', {'amount': '40.00', 'method': 'card'},
                               format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['status'], 'partial')

        response = client.post(f'/api/invoices/{invoice_id}/payments', {'amount': '75.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        billing.create_invoice(patient_id=self.other_patient.id, total_amount='200.00')
        response = client.get('/api/invoices')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['summary'], {'pendingTotal': '260.00', 'paidTotal': '0.00'})

        response = client.get('/api/invoices', {'patientId': self.patient.id})
        self.assertEqual([i['invoiceNumber'] for i in response.data['data']], ['INV-100'])
        self.assertEqual(response.data['summary']['pendingTotal'], '60.00')

        payments = client.get(f'/api/invoices/{invoice_id}/payments')
        self.assertEqual([p['amount'] for p in payments.data['data']], ['40.00'])

    def test_patient_sees_only_own_bills(self):
        mine = billing.create_invoice(patient_id=self.patient.id, total_amount='150.00')
        billing.record_payment(mine.id, '150.00')
        billing.create_invoice(patient_id=self.other_patient.id, total_amount='999.00')

        client = self.authenticate(self.patient)
        response = client.get('/api/patient/bills')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([i['id'] for i in response.data['data']], [mine.id])
        self.assertEqual(response.data['summary'], {'pendingTotal': '0.00', 'paidTotal': '150.00'})

        self.assertEqual(client.get('/api/invoices').status_code, status.HTTP_403_FORBIDDEN)

    def test_receptionist_can_record_payments_doctor_cannot_read_billing(self):
        invoice = billing.create_invoice(patient_id=self.patient.id, total_amount='50.00')
        client = self.authenticate(self.receptionist)
        self.assertEqual(client.get('/api/invoices').status_code, status.HTTP_200_OK)
        # billing.manage comes with the billing navigation item
        response = client.post(f'/api/invoices/{invoice.id}/payments', {'amount': '5.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(self.authenticate(self.doctor).get('/api/invoices').status_code, 403)

    def test_drifted_invoice_surfaces_integrity_error(self):
        invoice = billing.create_invoice(patient_id=self.patient.id, total_amount='100.00')
        Invoice.objects.filter(pk=invoice.pk).update(paid_amount=Decimal('40.00'), status='paid')
        response = self.authenticate(self.cashier).get('/api/invoices')
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data['error']['code'], 'integrity_error')

    # -- staff & patients ---------------------------------------------------------

    def test_admin_creates_and_updates_staff(self):
        client = self.authenticate(self.admin)
        response = client.post('/api/staff', {
            'email': 'lisa.park@hospital.com', 'password': PASSWORD, 'name': 'Lisa Park', 'role': 'doctor',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        staff_id = response.data['data']['id']

        response = client.patch(f'/api/staff/{staff_id}', {'phone': '+1-555-0105', 'isActive': False},
                                format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['data']['isActive'])
        self.assertEqual(response.data['data']['phone'], '+1-555-0105')

        response = client.patch(f'/api/staff/{staff_id}', {'role': 'admin'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(User.objects.get(pk=staff_id).role, 'doctor')

    def test_staff_endpoint_does_not_create_patients(self):
        response = self.authenticate(self.admin).post('/api/staff', {
            'email': 'x@example.com', 'password': PASSWORD, 'name': 'Someone', 'role': 'patient',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_staff_list_requires_staff_capability(self):
        self.assertEqual(self.authenticate(self.admin).get('/api/staff').status_code, 200)
        self.assertEqual(self.authenticate(self.receptionist).get('/api/staff').status_code, 403)

    def test_patient_lookup(self):
        response = self.authenticate(self.receptionist).get('/api/patients', {'q': 'maria'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p['id'] for p in response.data['data']], [self.other_patient.id])
        self.assertEqual(self.authenticate(self.cashier).get('/api/patients').status_code, 403)

    def test_healthz(self):
        response = APIClient().get('/healthz')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'ok': True, 'db': True})
