from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from ..capabilities import EMPTY, capabilities_for
from ..session import current_identity


@api_view(['GET'])
@permission_classes([AllowAny])
def my_capabilities(request):
    """Capability set of the caller; empty sections when anonymous."""
    identity = current_identity(request)
    caps = capabilities_for(identity.role) if identity else EMPTY
    return Response({'ok': True, 'role': getattr(identity, 'role', None), 'data': caps.as_dict()})
