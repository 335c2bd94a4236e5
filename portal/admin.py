"""
Django admin registrations for the portal models.

Invoices and appointments are read-mostly here: their status fields are
owned by the billing and appointment services, so the admin shows them
but does not let them be edited by hand.
"""
from django.contrib import admin

from .models import Appointment, AppointmentTransition, AuditEvent, Invoice, Payment, User


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('email', 'name', 'role', 'is_active', 'is_staff', 'date_joined')
    list_filter = ('role', 'is_active')
    search_fields = ('email', 'name', 'phone')
    exclude = ('password',)
    readonly_fields = ('last_login', 'date_joined')


class AppointmentTransitionInline(admin.TabularInline):
    model = AppointmentTransition
    extra = 0
    can_delete = False
    readonly_fields = ('from_status', 'to_status', 'operator', 'reason', 'timestamp')


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'doctor', 'date', 'time_slot', 'queue_position', 'status')
    list_filter = ('status',)
    search_fields = ('patient__name', 'doctor__name', 'reason')
    readonly_fields = ('status', 'queue_position', 'created_at', 'updated_at')
    inlines = [AppointmentTransitionInline]


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    can_delete = False
    readonly_fields = ('amount', 'method', 'reference', 'received_by', 'created_at')


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ('invoice_number', 'patient', 'total_amount', 'paid_amount', 'status', 'due_date')
    list_filter = ('status',)
    search_fields = ('invoice_number', 'patient__name', 'patient__email')
    readonly_fields = ('paid_amount', 'status', 'created_at')
    inlines = [PaymentInline]


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'action', 'user', 'object_type', 'object_id')
    list_filter = ('action', 'object_type')
    readonly_fields = ('user', 'action', 'object_type', 'object_id', 'detail', 'created_at')
