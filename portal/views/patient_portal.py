"""
Patient self-service: own appointments, own bills and doctor lookup.

A patient is always the subject of these calls; ids of other patients
are never accepted from the client.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..gate import require
from ..permissions import capability_required
from ..serializers.appointments import BookingSerializer
from ..services import appointments as engine
from ..services import billing
from ..session import current_identity


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, capability_required('myAppointments')])
def my_appointments(request):
    """GET splits the caller's appointments into upcoming and past; POST books one."""
    identity = current_identity(request)
    if request.method == 'POST':
        require(identity, 'myAppointments.book')
        s = BookingSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        appt = engine.book(
            patient_id=identity.id, doctor_id=vd['doctorId'], date=vd['date'],
            reason=vd.get('reason', ''), time_slot=vd.get('timeSlot'), actor=identity,
        )
        return Response({'ok': True, 'data': engine.format_appointment(appt)}, status=201)

    appts = list(engine.visible_appointments(identity).order_by('date', 'id'))
    split = engine.partition(appts)
    return Response({'ok': True, 'data': {
        'upcoming': [engine.format_appointment(a) for a in split.upcoming],
        'past': [engine.format_appointment(a) for a in reversed(split.past)],
        'all': [engine.format_appointment(a) for a in appts],
    }})


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, capability_required('myAppointments.cancel')])
def my_appointment_cancel(request, appointment_id: int):
    """Cancel one of the caller's scheduled appointments; the record is kept."""
    appt = engine.cancel(appointment_id, current_identity(request), 'cancelled by patient')
    return Response({'ok': True, 'data': engine.format_appointment(appt)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, capability_required('myBills')])
def my_bills(request):
    invoices = list(billing.visible_invoices(current_identity(request)))
    summary = billing.aggregate(invoices)
    return Response({
        'ok': True,
        'data': [billing.format_invoice(i) for i in invoices],
        'summary': summary.as_dict(),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def doctor_list(request):
    """Active doctors, for booking forms and the find-a-doctor page."""
    doctors = engine.active_doctors()
    q = (request.query_params.get('q') or '').strip().lower()
    if q:
        doctors = [d for d in doctors if q in d['name'].lower()]
    return Response({'ok': True, 'data': doctors})
