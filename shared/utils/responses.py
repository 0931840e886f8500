# shared/utils/responses.py
"""
Envelope helpers for API responses: {"success", "data", "message"}.
"""
from django.core.paginator import Paginator
from rest_framework import status as http_status
from rest_framework.response import Response

DEFAULT_PAGE_SIZE = 25


def success_response(data=None, message='', status=http_status.HTTP_200_OK, **extra):
    payload = {'success': True, 'data': data, 'message': message}
    payload.update(extra)
    return Response(payload, status=status)


def paginate(request, queryset, page_size=DEFAULT_PAGE_SIZE):
    """Return (page, meta) for ?page=N&page_size=M."""
    try:
        page_size = min(int(request.query_params.get('page_size', page_size)), 100)
    except (TypeError, ValueError):
        page_size = DEFAULT_PAGE_SIZE
    paginator = Paginator(queryset, max(page_size, 1))
    page_obj = paginator.get_page(request.query_params.get('page'))
    meta = {
        'page': page_obj.number,
        'page_size': paginator.per_page,
        'total': paginator.count,
        'total_pages': paginator.num_pages,
    }
    return page_obj, meta
