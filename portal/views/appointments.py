"""
Staff appointment endpoints.

Listing is filtered by ownership (doctors see only their own
appointments); booking and each status move are gated on their own
action capability.  Status moves go through the lifecycle engine, which
answers 409 with the current status when the move is not allowed.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..exceptions import NotFoundError
from ..gate import require
from ..pagination import paginate
from ..permissions import capability_required
from ..serializers.appointments import (
    AppointmentCreateSerializer,
    AppointmentListQuerySerializer,
    TransitionSerializer,
)
from ..services import appointments as engine
from ..session import current_identity


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, capability_required('appointments')])
def appointment_collection(request):
    identity = current_identity(request)
    if request.method == 'POST':
        require(identity, 'appointments.book')
        s = AppointmentCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        appt = engine.book(
            patient_id=vd['patientId'], doctor_id=vd['doctorId'], date=vd['date'],
            reason=vd.get('reason', ''), time_slot=vd.get('timeSlot'), actor=identity,
        )
        return Response({'ok': True, 'data': engine.format_appointment(appt)}, status=201)

    q = AppointmentListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = engine.visible_appointments(identity)
    if q.validated_data.get('status'):
        qs = qs.filter(status=q.validated_data['status'])
    items, pagination = paginate(
        qs.order_by('-date', '-id'), q.validated_data.get('page'), q.validated_data.get('pageSize'),
    )
    return Response({'ok': True, 'data': [engine.format_appointment(a) for a in items], 'pagination': pagination})


@api_view(['GET'])
@permission_classes([IsAuthenticated, capability_required('appointments')])
def appointment_detail(request, appointment_id: int):
    identity = current_identity(request)
    appt = engine.visible_appointments(identity).filter(pk=appointment_id).first()
    if appt is None:
        raise NotFoundError('Appointment not found')
    data = engine.format_appointment(appt)
    data['transitionHistory'] = [
        {
            'from': t.from_status,
            'to': t.to_status,
            'operatorId': t.operator_id,
            'reason': t.reason,
            'timestamp': t.timestamp.isoformat(),
        }
        for t in appt.transitions.all().order_by('timestamp', 'id')
    ]
    return Response({'ok': True, 'data': data})


def _move(request, appointment_id: int, action):
    s = TransitionSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appt = action(appointment_id, current_identity(request), s.validated_data.get('reason', ''))
    return Response({'ok': True, 'data': engine.format_appointment(appt)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, capability_required('appointments.cancel')])
def appointment_cancel(request, appointment_id: int):
    return _move(request, appointment_id, engine.cancel)


@api_view(['POST'])
@permission_classes([IsAuthenticated, capability_required('appointments.start')])
def appointment_start(request, appointment_id: int):
    return _move(request, appointment_id, engine.start)


@api_view(['POST'])
@permission_classes([IsAuthenticated, capability_required('appointments.complete')])
def appointment_complete(request, appointment_id: int):
    return _move(request, appointment_id, engine.complete)
