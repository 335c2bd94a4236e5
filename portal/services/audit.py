from typing import Optional, Any, Dict
from portal.models import AuditEvent


def log_action(*, user, action: str, object_type: Optional[str] = None, object_id: Optional[int] = None,
               detail: Optional[Dict[str, Any]] = None) -> AuditEvent:
    """Append an audit row; ``user`` may be a User, an Identity or None."""
    user_id = getattr(user, 'pk', None) or getattr(user, 'id', None)
    return AuditEvent.objects.create(
        user_id=user_id,
        action=action,
        object_type=object_type, object_id=object_id,
        detail=detail or {},
    )
