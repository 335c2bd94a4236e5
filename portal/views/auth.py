"""
Authentication endpoints.

Login establishes a Django session and also issues a DRF token and a
SimpleJWT pair, so browser, legacy-token and JWT clients all resolve to
the same identity.  The response carries the caller's capability set so
the client can build its navigation without a second round trip.
"""
from __future__ import annotations

import logging

from rest_framework.authtoken.models import Token
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from rest_framework_simplejwt.serializers import TokenRefreshSerializer
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.tokens import RefreshToken

from ..capabilities import capabilities_for
from ..exceptions import InvalidCredentials
from ..serializers.auth import (
    ChangePasswordSerializer,
    LoginSerializer,
    ProfileSerializer,
    RefreshSerializer,
    SignupSerializer,
)
from ..services import accounts
from ..services.audit import log_action
from ..session import Identity, SessionContext
from ..throttling import LoginRateThrottle, SignupRateThrottle

logger = logging.getLogger(__name__)


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([SignupRateThrottle])
def signup_view(request):
    """Register a patient account.  Any ``role`` in the body is ignored."""
    s = SignupSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    accounts.signup(**vd)
    identity = SessionContext.for_request(request).login(vd['email'], vd['password'])
    return Response({'ok': True, 'data': identity.as_dict()}, status=201)


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([LoginRateThrottle])
def login_view(request):
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    email = s.validated_data['email']
    ctx = SessionContext.for_request(request)
    ip = request.META.get('REMOTE_ADDR')
    try:
        identity = ctx.login(email, s.validated_data['password'])
    except InvalidCredentials:
        log_action(user=None, action='login', object_type='user',
                   detail={'result': 'fail', 'email': email, 'ip': ip})
        raise

    user = ctx.user
    log_action(user=user, action='login', object_type='user', object_id=user.id,
               detail={'result': 'ok', 'ip': ip})
    token_obj, _ = Token.objects.get_or_create(user=user)
    refresh = RefreshToken.for_user(user)
    return Response({
        'ok': True,
        'user': identity.as_dict(),
        'token': token_obj.key,
        'jwt_access': str(refresh.access_token),
        'jwt_refresh': str(refresh),
        'capabilities': capabilities_for(identity.role).as_dict(),
    })


@api_view(['POST'])
@permission_classes([AllowAny])
def logout_view(request):
    """End the session, drop the DRF token and blacklist refresh tokens.

    A ``refresh`` in the body is blacklisted on its own; without one every
    outstanding refresh token of the caller is.

    Always answers 200 so clients can call it unconditionally.
    """
    ctx = SessionContext.for_request(request)
    user = ctx.user
    refresh = request.data.get('refresh') if hasattr(request.data, 'get') else None
    if refresh:
        try:
            RefreshToken(refresh).blacklist()
        except TokenError as e:
            logger.info('logout with unusable refresh token: %s', e)
    elif user is not None:
        for outstanding in OutstandingToken.objects.filter(user=user):
            BlacklistedToken.objects.get_or_create(token=outstanding)
    if user is not None:
        Token.objects.filter(user=user).delete()
        log_action(user=user, action='logout', object_type='user', object_id=user.id)
    ctx.logout()
    return Response({'ok': True})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def current_user(request):
    identity = SessionContext.for_request(request).get_current_identity()
    return Response({'ok': True, 'data': identity.as_dict()})


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def update_profile(request):
    s = ProfileSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    user = accounts.update_profile(request.user, **s.validated_data)
    return Response({'ok': True, 'data': dict(Identity.from_user(user).as_dict(), phone=user.phone)})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def change_password(request):
    s = ChangePasswordSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    accounts.change_password(
        request.user, current=s.validated_data['currentPassword'], new=s.validated_data['newPassword'],
    )
    return Response({'ok': True})


@api_view(['POST'])
@permission_classes([AllowAny])
def refresh_view(request):
    """Exchange a refresh token for a new access token."""
    s = RefreshSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    refresh = TokenRefreshSerializer(data=s.validated_data)
    try:
        refresh.is_valid(raise_exception=True)
    except TokenError as e:
        raise InvalidToken(e.args[0])
    data = dict(refresh.validated_data)
    payload = {'ok': True, 'jwt_access': data['access']}
    if 'refresh' in data:
        payload['jwt_refresh'] = data['refresh']
    return Response(payload)
