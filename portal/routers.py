"""
URL mappings for the care portal API.

Paths carry no trailing slash.  Appointment status moves are separate
POST endpoints so each can be gated on its own action capability.
"""
from django.urls import path
from django_prometheus import exports

from .views import auth, health
from .views.appointments import (
    appointment_cancel,
    appointment_collection,
    appointment_complete,
    appointment_detail,
    appointment_start,
)
from .views.billing import invoice_collection, invoice_payments
from .views.capabilities import my_capabilities
from .views.patient_portal import doctor_list, my_appointment_cancel, my_appointments, my_bills
from .views.staff import patient_list, staff_collection, staff_update

urlpatterns = [
    # auth
    path('api/auth/signup', auth.signup_view, name='auth-signup'),
    path('api/auth/login', auth.login_view, name='auth-login'),
    path('api/auth/logout', auth.logout_view, name='auth-logout'),
    path('api/auth/user', auth.current_user, name='auth-user'),
    path('api/auth/profile', auth.update_profile, name='auth-profile'),
    path('api/auth/change-password', auth.change_password, name='auth-change-password'),
    path('api/auth/refresh', auth.refresh_view, name='auth-refresh'),
    path('api/capabilities', my_capabilities, name='capabilities'),

    # staff appointments
    path('api/appointments', appointment_collection, name='appointments'),
    path('api/appointments/<int:appointment_id>', appointment_detail, name='appointment-detail'),
    path('api/appointments/<int:appointment_id>/cancel', appointment_cancel, name='appointment-cancel'),
    path('api/appointments/<int:appointment_id>/start', appointment_start, name='appointment-start'),
    path('api/appointments/<int:appointment_id>/complete', appointment_complete, name='appointment-complete'),

    # patient portal
    path('api/patient/appointments', my_appointments, name='my-appointments'),
    path('api/patient/appointments/<int:appointment_id>', my_appointment_cancel, name='my-appointment-cancel'),
    path('api/patient/bills', my_bills, name='my-bills'),
    path('api/doctors', doctor_list, name='doctors'),

    # billing
    path('api/invoices', invoice_collection, name='invoices'),
    path('api/invoices/<int:invoice_id>/payments', invoice_payments, name='invoice-payments'),

    # people
    path('api/staff', staff_collection, name='staff'),
    path('api/staff/<int:user_id>', staff_update, name='staff-update'),
    path('api/patients', patient_list, name='patients'),

    # ops
    path('healthz', health.healthz, name='healthz'),
    path('metrics', exports.ExportToDjangoView, name='prometheus-django-metrics'),
]
