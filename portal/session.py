"""
Per-request session context.

:class:`SessionContext` owns the identity of whoever is making the
current request.  Views build one from the DRF request and hand it to
the access gate and services; nothing reads the identity from global
state.  The underlying credential check and session persistence are
Django's (``authenticate``/``login``/``logout``), so an identity
established by :meth:`SessionContext.login` survives across requests via
the session cookie, while token and JWT clients are resolved by DRF's
authentication classes before the context is built.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from django.contrib.auth import authenticate
from django.contrib.auth import login as django_login
from django.contrib.auth import logout as django_logout

from .exceptions import InvalidCredentials

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    id: int
    email: str
    name: str
    role: str
    is_active: bool = True

    @classmethod
    def from_user(cls, user) -> "Identity":
        return cls(
            id=user.pk,
            email=user.email,
            name=user.name or user.email,
            role=user.role,
            is_active=bool(user.is_active),
        )

    def as_dict(self) -> dict:
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'role': self.role,
            'isActive': self.is_active,
        }


_UNSET = object()


class SessionContext:
    """Identity holder for one request.

    ``get_current_identity`` is computed once and cached; ``login`` and
    ``logout`` replace the cached value.
    """

    def __init__(self, request):
        self.request = request
        self._identity = _UNSET

    @classmethod
    def for_request(cls, request) -> "SessionContext":
        ctx = getattr(request, '_portal_session', None)
        if ctx is None:
            ctx = cls(request)
            request._portal_session = ctx
        return ctx

    @property
    def user(self):
        user = getattr(self.request, 'user', None)
        if user is not None and getattr(user, 'is_authenticated', False) and user.is_active:
            return user
        return None

    def get_current_identity(self) -> Optional[Identity]:
        if self._identity is _UNSET:
            user = self.user
            self._identity = Identity.from_user(user) if user is not None else None
        return self._identity

    def login(self, email: str, secret: str) -> Identity:
        email = (email or '').strip().lower()
        http_request = getattr(self.request, '_request', self.request)
        user = authenticate(http_request, username=email, password=secret)
        if user is None:
            logger.info('login rejected for %s', email)
            raise InvalidCredentials()
        django_login(http_request, user)
        # DRF caches the authenticated user on its own request object
        self.request.user = user
        self._identity = Identity.from_user(user)
        logger.info('login ok user=%s role=%s', user.pk, user.role)
        return self._identity

    def logout(self) -> None:
        http_request = getattr(self.request, '_request', self.request)
        django_logout(http_request)
        self._identity = None


def current_identity(request) -> Optional[Identity]:
    return SessionContext.for_request(request).get_current_identity()
