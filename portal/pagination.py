from django.conf import settings

from .exceptions import ValidationError


def paginate(qs, page=None, page_size=None):
    """Slice ``qs`` by 1-based ``page``; no ``page_size`` means everything."""
    try:
        page = max(1, int(page or 1))
        page_size = int(page_size or 0)
    except (TypeError, ValueError):
        raise ValidationError('page and pageSize must be integers')
    total = qs.count()
    if page_size <= 0:
        return list(qs), {'total': total, 'page': 1, 'pageSize': total}
    page_size = min(settings.PORTAL_PAGE_SIZE_MAX, page_size)
    start = (page - 1) * page_size
    return list(qs[start:start + page_size]), {'total': total, 'page': page, 'pageSize': page_size}
