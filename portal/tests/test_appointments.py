from datetime import datetime, timedelta, timezone as dt_timezone
from zoneinfo import ZoneInfo

import pytest
from django.utils import timezone

from portal.exceptions import InvalidTransition, NotFoundError, ValidationError
from portal.models import Appointment, AppointmentTransition, AuditEvent, Role
from portal.services import accounts
from portal.services import appointments as engine
from portal.session import Identity

pytestmark = pytest.mark.django_db


def _book(patient, doctor, **kwargs):
    kwargs.setdefault('date', timezone.now() + timedelta(days=1))
    return engine.book(patient_id=patient.id, doctor_id=doctor.id, **kwargs)


def test_book_creates_scheduled_appointment_with_history(patient, doctor):
    appt = _book(patient, doctor, reason='Annual heart checkup', actor=patient)
    assert appt.status == Appointment.STATUS_SCHEDULED
    assert appt.time_slot == '09:00-10:00'
    history = list(AppointmentTransition.objects.filter(appointment=appt))
    assert len(history) == 1
    assert history[0].from_status is None
    assert history[0].to_status == Appointment.STATUS_SCHEDULED
    assert AuditEvent.objects.filter(action='appointment_book', object_id=appt.id).exists()


def test_book_accepts_iso_strings_and_keeps_slot(patient, doctor):
    appt = _book(patient, doctor, date='2031-05-01T10:30:00', time_slot='10:30-11:00')
    assert timezone.is_aware(appt.date)
    assert appt.time_slot == '10:30-11:00'
    assert timezone.localtime(appt.date).hour == 10


def test_book_sanitises_reason(patient, doctor):
    appt = _book(patient, doctor, reason='  <b>Chest</b> pain ')
    assert appt.reason == 'Chest pain'


@pytest.mark.parametrize('bad', [None, '', 'tomorrow', '2031-02-30', '2031-02-30T10:00:00', 17])
def test_book_rejects_missing_or_invalid_dates(patient, doctor, bad):
    with pytest.raises(ValidationError):
        engine.book(patient_id=patient.id, doctor_id=doctor.id, date=bad)
    assert Appointment.objects.count() == 0


def test_book_requires_doctor(patient):
    with pytest.raises(ValidationError):
        engine.book(patient_id=patient.id, doctor_id=None, date='2031-05-01T10:00:00')


def test_book_rejects_inactive_or_non_doctor(patient, make_user):
    retired = make_user(Role.DOCTOR, is_active=False)
    nurse = make_user(Role.NURSE)
    for doctor_id in (retired.id, nurse.id, 999999):
        with pytest.raises(NotFoundError):
            engine.book(patient_id=patient.id, doctor_id=doctor_id, date='2031-05-01T10:00:00')
    assert Appointment.objects.count() == 0


def test_book_requires_active_patient(doctor, make_user):
    gone = make_user(Role.PATIENT, is_active=False)
    with pytest.raises(NotFoundError):
        _book(gone, doctor)


def test_queue_position_counts_scheduled_visits_that_day(patient, other_patient, doctor, make_user):
    day = timezone.localtime(timezone.now() + timedelta(days=2)).replace(hour=9, minute=0, second=0, microsecond=0)
    first = _book(patient, doctor, date=day)
    second = _book(other_patient, doctor, date=day + timedelta(hours=3))
    assert (first.queue_position, second.queue_position) == (1, 2)

    # cancelled visits free their place for later bookings
    engine.cancel(first.id)
    third = _book(patient, doctor, date=day + timedelta(hours=5))
    assert third.queue_position == 2

    # another day and another doctor each start their own queue
    assert _book(patient, doctor, date=day + timedelta(days=1)).queue_position == 1
    assert _book(patient, make_user(Role.DOCTOR), date=day).queue_position == 1
    assert engine.format_appointment(third)['queuePosition'] == 2


def test_cancel_scheduled(patient, doctor):
    appt = _book(patient, doctor)
    engine.cancel(appt.id, requester=Identity.from_user(patient))
    appt.refresh_from_db()
    assert appt.status == Appointment.STATUS_CANCELLED
    assert appt.transitions.count() == 2


def test_cancel_twice_reports_current_status(patient, doctor):
    appt = _book(patient, doctor)
    engine.cancel(appt.id)
    with pytest.raises(InvalidTransition) as exc:
        engine.cancel(appt.id)
    assert exc.value.current_status == Appointment.STATUS_CANCELLED
    assert appt.transitions.count() == 2


def test_in_progress_cannot_be_cancelled(patient, doctor):
    appt = _book(patient, doctor)
    engine.start(appt.id, requester=Identity.from_user(doctor))
    with pytest.raises(InvalidTransition) as exc:
        engine.cancel(appt.id)
    assert exc.value.current_status == Appointment.STATUS_IN_PROGRESS
    appt.refresh_from_db()
    assert appt.status == Appointment.STATUS_IN_PROGRESS


def test_start_then_complete(patient, doctor):
    appt = _book(patient, doctor)
    requester = Identity.from_user(doctor)
    with pytest.raises(InvalidTransition):
        engine.complete(appt.id, requester=requester)
    engine.start(appt.id, requester=requester)
    engine.complete(appt.id, requester=requester, reason='seen')
    appt.refresh_from_db()
    assert appt.status == Appointment.STATUS_COMPLETED
    steps = list(appt.transitions.order_by('id').values_list('from_status', 'to_status'))
    assert steps == [(None, 'scheduled'), ('scheduled', 'in_progress'), ('in_progress', 'completed')]
    with pytest.raises(InvalidTransition):
        engine.cancel(appt.id)


def test_patient_cannot_touch_someone_elses_appointment(patient, other_patient, doctor):
    appt = _book(other_patient, doctor)
    with pytest.raises(NotFoundError):
        engine.cancel(appt.id, requester=Identity.from_user(patient))
    appt.refresh_from_db()
    assert appt.status == Appointment.STATUS_SCHEDULED


def test_doctor_cannot_move_unassigned_appointment(patient, doctor, make_user):
    appt = _book(patient, doctor)
    other_doctor = make_user(Role.DOCTOR)
    with pytest.raises(NotFoundError):
        engine.start(appt.id, requester=Identity.from_user(other_doctor))


def test_unknown_appointment():
    with pytest.raises(NotFoundError):
        engine.cancel(424242)
    with pytest.raises(NotFoundError):
        engine.cancel('abc')


def test_unknown_target_status(patient, doctor):
    appt = _book(patient, doctor)
    with pytest.raises(ValidationError):
        engine.transition(appt.id, 'rescheduled')


def test_broadcast_after_commit(patient, doctor, monkeypatch, django_capture_on_commit_callbacks):
    sent = []
    monkeypatch.setattr(engine, '_broadcast', lambda appt, event: sent.append((appt.id, event)))
    with django_capture_on_commit_callbacks(execute=True):
        appt = _book(patient, doctor)
    with django_capture_on_commit_callbacks(execute=True):
        engine.cancel(appt.id)
    assert sent == [(appt.id, 'booked'), (appt.id, 'cancelled')]


# -- partition ---------------------------------------------------------------

NOW = datetime(2024, 5, 1, 15, 0, tzinfo=dt_timezone.utc)


def _appt(status, when):
    return Appointment(status=status, date=when)


def test_partition_same_day_scheduled_is_upcoming():
    earlier_today = _appt('scheduled', NOW - timedelta(hours=5))
    result = engine.partition([earlier_today], now=NOW)
    assert result.upcoming == [earlier_today]
    assert result.past == []


def test_partition_examples():
    completed_future = _appt('completed', NOW + timedelta(days=3))
    cancelled_yesterday = _appt('cancelled', NOW - timedelta(days=1))
    cancelled_tomorrow = _appt('cancelled', NOW + timedelta(days=1))
    in_progress_today = _appt('in_progress', NOW)
    scheduled_last_week = _appt('scheduled', NOW - timedelta(days=7))
    scheduled_next_week = _appt('scheduled', NOW + timedelta(days=7))
    items = [completed_future, cancelled_yesterday, cancelled_tomorrow, in_progress_today,
             scheduled_last_week, scheduled_next_week]

    result = engine.partition(items, now=NOW)

    assert result.upcoming == [in_progress_today, scheduled_next_week]
    assert result.past == [completed_future, cancelled_yesterday, scheduled_last_week]
    assert cancelled_tomorrow not in result.upcoming + result.past
    assert engine.partition(items, now=NOW) == result


def test_partition_uses_local_calendar_day():
    # 23:00 on May 1st in New York, already May 2nd in UTC
    now = datetime(2024, 5, 2, 3, 0, tzinfo=dt_timezone.utc)
    morning = _appt('scheduled', datetime(2024, 5, 1, 15, 0, tzinfo=dt_timezone.utc))
    with timezone.override(ZoneInfo('America/New_York')):
        assert engine.partition([morning], now=now).upcoming == [morning]
    with timezone.override(ZoneInfo('UTC')):
        assert engine.partition([morning], now=now).past == [morning]


# -- visibility & doctors ------------------------------------------------------

def test_visibility_follows_ownership(patient, other_patient, doctor, make_user):
    mine = _book(patient, doctor)
    theirs = _book(other_patient, make_user(Role.DOCTOR))
    receptionist = make_user(Role.RECEPTIONIST)
    cashier = make_user(Role.CASHIER)

    assert list(engine.visible_appointments(Identity.from_user(patient))) == [mine]
    assert list(engine.visible_appointments(Identity.from_user(doctor))) == [mine]
    assert set(engine.visible_appointments(Identity.from_user(receptionist))) == {mine, theirs}
    assert not engine.visible_appointments(Identity.from_user(cashier)).exists()
    assert not engine.visible_appointments(None).exists()


def test_active_doctors_cached_until_staff_change(doctor, make_user):
    make_user(Role.DOCTOR, is_active=False)
    first = engine.active_doctors()
    assert [d['id'] for d in first] == [doctor.id]

    make_user(Role.DOCTOR, name='Zed Unseen')
    assert engine.active_doctors() == first

    new = accounts.create_staff(email='michael.chen@hospital.com', password='Zebra-Lamp-42',
                                name='Michael Chen', role=Role.DOCTOR)
    names = [d['name'] for d in engine.active_doctors()]
    assert 'Michael Chen' in names and 'Zed Unseen' in names

    accounts.update_staff(new.id, is_active=False)
    assert new.id not in [d['id'] for d in engine.active_doctors()]
