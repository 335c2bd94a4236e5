"""
Appointment lifecycle engine.

Appointments move ``scheduled -> in_progress -> completed`` or
``scheduled -> cancelled``.  Every accepted move locks the row, checks
the transition table against the locked status, saves once and appends
an :class:`~portal.models.AppointmentTransition` row.  Subscribers of
the patient and doctor channel groups are notified after commit.
"""
from __future__ import annotations

import logging
from datetime import date as date_cls, datetime, time, timedelta
from typing import Iterable, List, NamedTuple, Optional

import bleach
from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.core.cache import cache
from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from portal.exceptions import InvalidTransition, NotFoundError, ValidationError
from portal.gate import authorize
from portal.models import Appointment, AppointmentTransition, Role, User
from portal.services.audit import log_action

logger = logging.getLogger(__name__)

TRANSITIONS = {
    Appointment.STATUS_SCHEDULED: (Appointment.STATUS_IN_PROGRESS, Appointment.STATUS_CANCELLED),
    Appointment.STATUS_IN_PROGRESS: (Appointment.STATUS_COMPLETED,),
    Appointment.STATUS_COMPLETED: (),
    Appointment.STATUS_CANCELLED: (),
}
UPCOMING_STATUSES = frozenset({Appointment.STATUS_SCHEDULED, Appointment.STATUS_IN_PROGRESS})

DOCTORS_CACHE_KEY = 'portal:doctors:active'


def can_transition(current: str, new: str) -> bool:
    """Return True if an appointment may move from ``current`` to ``new``."""
    return new in TRANSITIONS.get(current, ())


def resolve_date(value) -> datetime:
    """Turn a datetime, date or ISO-8601 string into an aware datetime.

    Naive values are interpreted in the current time zone.  Raises
    :class:`ValidationError` for missing or impossible dates.
    """
    if value is None or value == '':
        raise ValidationError('date is required')
    if isinstance(value, datetime):
        when = value
    elif isinstance(value, date_cls):
        when = datetime.combine(value, time.min)
    elif isinstance(value, str):
        try:
            when = parse_datetime(value.strip())
        except ValueError:
            when = None
        if when is None:
            raise ValidationError(f'date {value!r} is not a valid calendar date')
    else:
        raise ValidationError('date must be an ISO-8601 string')
    if timezone.is_naive(when):
        when = timezone.make_aware(when)
    return when


def _pk(value, field: str) -> int:
    if value is None or value == '':
        raise ValidationError(f'{field} is required')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer')


def _active_member(user_id: int, role: str) -> Optional[User]:
    return User.objects.filter(pk=user_id, role=role, is_active=True).first()


def _day_bounds(when: datetime):
    """Start and end of the local calendar day containing ``when``."""
    start = timezone.make_aware(datetime.combine(timezone.localtime(when).date(), time.min))
    return start, start + timedelta(days=1)


def _broadcast(appt: Appointment, event: str) -> None:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    payload = {
        'type': 'appointment.event',
        'event': event,
        'appointment': format_appointment(appt),
    }
    for user_id in {appt.patient_id, appt.doctor_id}:
        async_to_sync(channel_layer.group_send)(f'appointments.user.{user_id}', payload)


def book(*, patient_id, doctor_id, date, reason: str = '', time_slot: Optional[str] = None,
         actor=None) -> Appointment:
    """Create a ``scheduled`` appointment for an active patient and doctor."""
    patient_pk = _pk(patient_id, 'patientId')
    doctor_pk = _pk(doctor_id, 'doctorId')
    when = resolve_date(date)

    doctor = _active_member(doctor_pk, Role.DOCTOR)
    if doctor is None:
        raise NotFoundError('Doctor not found or not accepting appointments')
    patient = _active_member(patient_pk, Role.PATIENT)
    if patient is None:
        raise NotFoundError('Patient not found')

    reason = bleach.clean((reason or '').strip(), strip=True)
    time_slot = (time_slot or '').strip() or settings.PORTAL_DEFAULT_TIME_SLOT
    operator_id = getattr(actor, 'id', None)

    with transaction.atomic():
        # serialises concurrent bookings for the same doctor
        doctor = User.objects.select_for_update().get(pk=doctor.pk)
        day_start, day_end = _day_bounds(when)
        ahead = Appointment.objects.filter(
            doctor=doctor, status=Appointment.STATUS_SCHEDULED, date__gte=day_start, date__lt=day_end,
        ).count()
        appt = Appointment.objects.create(
            patient=patient, doctor=doctor, date=when, time_slot=time_slot, queue_position=ahead + 1,
            reason=reason, status=Appointment.STATUS_SCHEDULED, created_by_id=operator_id,
        )
        AppointmentTransition.objects.create(
            appointment=appt, from_status=None, to_status=Appointment.STATUS_SCHEDULED,
            operator_id=operator_id, reason='booked',
        )
        log_action(user=actor, action='appointment_book', object_type='appointment', object_id=appt.id,
                   detail={'patientId': patient.id, 'doctorId': doctor.id, 'date': when.isoformat()})
        transaction.on_commit(lambda: _broadcast(appt, 'booked'), robust=True)

    logger.info('appointment %s booked patient=%s doctor=%s date=%s', appt.id, patient.id, doctor.id, when.isoformat())
    return appt


def _can_see(appt: Appointment, requester) -> bool:
    if requester is None:
        return True
    role = getattr(requester, 'role', None)
    if role == Role.PATIENT:
        return appt.patient_id == requester.id
    if role == Role.DOCTOR:
        return appt.doctor_id == requester.id
    return True


def transition(appointment_id, new_status: str, *, requester=None, reason: str = '') -> Appointment:
    """Move an appointment to ``new_status`` under a row lock.

    Unknown ids and appointments the requester may not see raise
    :class:`NotFoundError`; moves outside :data:`TRANSITIONS` raise
    :class:`InvalidTransition` and leave the row untouched.
    """
    if new_status not in TRANSITIONS:
        raise ValidationError(f'Unknown appointment status {new_status!r}')
    try:
        pk = int(appointment_id)
    except (TypeError, ValueError):
        raise NotFoundError('Appointment not found')

    with transaction.atomic():
        appt = Appointment.objects.select_for_update().filter(pk=pk).first()
        if appt is None or not _can_see(appt, requester):
            raise NotFoundError('Appointment not found')
        old_status = appt.status
        if not can_transition(old_status, new_status):
            logger.info('appointment %s rejected %s -> %s', appt.id, old_status, new_status)
            raise InvalidTransition(old_status, new_status)
        appt.status = new_status
        appt.save(update_fields=['status', 'updated_at'])
        AppointmentTransition.objects.create(
            appointment=appt, from_status=old_status, to_status=new_status,
            operator_id=getattr(requester, 'id', None),
            reason=bleach.clean((reason or '').strip(), strip=True),
        )
        log_action(user=requester, action=f'appointment_{new_status}', object_type='appointment',
                   object_id=appt.id, detail={'from': old_status, 'to': new_status})
        transaction.on_commit(lambda: _broadcast(appt, new_status), robust=True)

    logger.info('appointment %s %s -> %s by %s', appt.id, old_status, new_status, getattr(requester, 'id', None))
    return appt


def cancel(appointment_id, requester=None, reason: str = '') -> Appointment:
    return transition(appointment_id, Appointment.STATUS_CANCELLED, requester=requester, reason=reason)


def start(appointment_id, requester=None, reason: str = '') -> Appointment:
    return transition(appointment_id, Appointment.STATUS_IN_PROGRESS, requester=requester, reason=reason)


def complete(appointment_id, requester=None, reason: str = '') -> Appointment:
    return transition(appointment_id, Appointment.STATUS_COMPLETED, requester=requester, reason=reason)


class Partition(NamedTuple):
    upcoming: List[Appointment]
    past: List[Appointment]


def _local_day(value) -> date_cls:
    if isinstance(value, datetime):
        return timezone.localtime(value).date() if timezone.is_aware(value) else value.date()
    return value


def partition(appointments: Iterable[Appointment], now: Optional[datetime] = None) -> Partition:
    """Split appointments into upcoming and past, keeping input order.

    Upcoming: scheduled or in progress on or after today.  Past: completed,
    or dated before today.  Cancelled appointments dated today or later
    belong to neither.
    """
    today = _local_day(now or timezone.now())
    upcoming: List[Appointment] = []
    past: List[Appointment] = []
    for appt in appointments:
        day = _local_day(appt.date)
        if appt.status in UPCOMING_STATUSES and day >= today:
            upcoming.append(appt)
        elif appt.status == Appointment.STATUS_COMPLETED or day < today:
            past.append(appt)
    return Partition(upcoming, past)


def visible_appointments(identity):
    qs = Appointment.objects.select_related('patient', 'doctor')
    if identity is None:
        return qs.none()
    if identity.role == Role.PATIENT and authorize(identity, 'myAppointments'):
        return qs.filter(patient_id=identity.id)
    if identity.role == Role.DOCTOR and authorize(identity, 'appointments'):
        return qs.filter(doctor_id=identity.id)
    if authorize(identity, 'appointments'):
        return qs
    return qs.none()


def active_doctors() -> list[dict]:
    doctors = cache.get(DOCTORS_CACHE_KEY)
    if doctors is None:
        doctors = [
            {'id': d.id, 'name': d.name, 'email': d.email, 'phone': d.phone}
            for d in User.objects.filter(role=Role.DOCTOR, is_active=True).order_by('name', 'id')
        ]
        cache.set(DOCTORS_CACHE_KEY, doctors, settings.PORTAL_DOCTOR_CACHE_SECONDS)
    return doctors


def invalidate_doctors_cache() -> None:
    cache.delete(DOCTORS_CACHE_KEY)


def format_appointment(appt: Appointment) -> dict:
    return {
        'id': appt.id,
        'patientId': appt.patient_id,
        'patientName': appt.patient.name if appt.patient_id else None,
        'doctorId': appt.doctor_id,
        'doctorName': appt.doctor.name if appt.doctor_id else None,
        'date': appt.date.isoformat(),
        'timeSlot': appt.time_slot,
        'queuePosition': appt.queue_position,
        'reason': appt.reason,
        'status': appt.status,
        'createdAt': appt.created_at.isoformat() if appt.created_at else None,
    }
