"""
Access gate: decides whether an identity may use a capability.

The decision is always recomputed from the identity's role through
:func:`portal.capabilities.capabilities_for`; nothing is stored.
"""
from __future__ import annotations

import logging
from typing import Optional

from .capabilities import capabilities_for
from .exceptions import Unauthorized
from .session import Identity

logger = logging.getLogger(__name__)


def authorize(identity: Optional[Identity], capability: str) -> bool:
    if identity is None or not identity.is_active:
        return False
    return capabilities_for(identity.role).allows(capability)


def authorize_any(identity: Optional[Identity], capabilities) -> bool:
    return any(authorize(identity, c) for c in capabilities)


def require(identity: Optional[Identity], capability: str) -> Identity:
    """Return ``identity`` if allowed, otherwise raise :class:`Unauthorized`."""
    if not authorize(identity, capability):
        logger.warning(
            'denied capability=%s user=%s role=%s',
            capability, getattr(identity, 'id', None), getattr(identity, 'role', None),
        )
        raise Unauthorized()
    return identity  # type: ignore[return-value]
