"""
Permission classes wiring the access gate into DRF views.
"""
from rest_framework.permissions import BasePermission

from .gate import authorize_any
from .session import SessionContext


class HasCapability(BasePermission):
    """Allow the request when the caller's role holds one of ``capabilities``.

    Use :func:`capability_required` to build a concrete subclass.
    """
    capabilities: tuple[str, ...] = ()
    message = 'You do not have access to this resource.'
    code = 'unauthorized'

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        identity = SessionContext.for_request(request).get_current_identity()
        return authorize_any(identity, self.capabilities)


def capability_required(*capabilities: str) -> type[HasCapability]:
    name = 'Requires_' + '_or_'.join(c.replace('.', '_') for c in capabilities)
    return type(name, (HasCapability,), {'capabilities': tuple(capabilities)})
