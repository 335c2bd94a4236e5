"""
Staff directory and patient lookup for staff roles.
"""
from __future__ import annotations

from django.db.models import Q
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..gate import require
from ..models import Role, User
from ..pagination import paginate
from ..permissions import capability_required
from ..serializers.staff import StaffCreateSerializer, StaffListQuerySerializer, StaffUpdateSerializer
from ..services import accounts
from ..session import current_identity


def _staff_dict(user: User) -> dict:
    return {
        'id': user.id,
        'email': user.email,
        'name': user.name,
        'role': user.role,
        'phone': user.phone,
        'isActive': user.is_active,
        'dateJoined': user.date_joined.isoformat(),
    }


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, capability_required('staff')])
def staff_collection(request):
    identity = current_identity(request)
    if request.method == 'POST':
        require(identity, 'staff.manage')
        s = StaffCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        user = accounts.create_staff(**s.validated_data, actor=identity)
        return Response({'ok': True, 'data': _staff_dict(user)}, status=201)

    q = StaffListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = User.objects.exclude(role=Role.PATIENT).order_by('name', 'id')
    if q.validated_data.get('role'):
        qs = qs.filter(role=q.validated_data['role'])
    term = (q.validated_data.get('q') or '').strip()
    if term:
        qs = qs.filter(Q(name__icontains=term) | Q(email__icontains=term))
    return Response({'ok': True, 'data': [_staff_dict(u) for u in qs]})


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, capability_required('staff.manage')])
def staff_update(request, user_id: int):
    """Update name, phone or active flag.  A ``role`` field is rejected."""
    s = StaffUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    user = accounts.update_staff(
        user_id, actor=current_identity(request),
        name=vd.get('name'), phone=vd.get('phone'), is_active=vd.get('isActive'),
    )
    return Response({'ok': True, 'data': _staff_dict(user)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, capability_required('patients')])
def patient_list(request):
    qs = User.objects.filter(role=Role.PATIENT).order_by('name', 'id')
    term = (request.query_params.get('q') or '').strip()
    if term:
        qs = qs.filter(Q(name__icontains=term) | Q(email__icontains=term) | Q(phone__icontains=term))
    items, pagination = paginate(qs, request.query_params.get('page'), request.query_params.get('pageSize'))
    data = [
        {'id': u.id, 'name': u.name, 'email': u.email, 'phone': u.phone, 'isActive': u.is_active}
        for u in items
    ]
    return Response({'ok': True, 'data': data, 'pagination': pagination})
