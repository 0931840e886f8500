# config/views.py
"""
Project-level views: health check and JSON error handlers.
"""

from django.conf import settings
from django.db import connection
from django.db.utils import OperationalError
from django.http import JsonResponse
from django.utils import timezone


# ============================================================================
# HEALTH & STATUS
# ============================================================================

def health_check_view(request):
    """System health check endpoint."""
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
        db_status = True
    except OperationalError:
        db_status = False

    status_code = 200 if db_status else 503

    return JsonResponse({
        'status': 'healthy' if db_status else 'unhealthy',
        'database': 'connected' if db_status else 'disconnected',
        'currency': settings.ACADEMY_CURRENCY,
        'timestamp': timezone.now().isoformat(),
    }, status=status_code)


# ============================================================================
# ERROR HANDLERS
# ============================================================================

def _error_response(message, status):
    return JsonResponse({'success': False, 'message': message}, status=status)


def handler404(request, exception):
    return _error_response('The resource you are looking for does not exist.', 404)


def handler500(request):
    return _error_response('Something went wrong on our end.', 500)


def handler403(request, exception):
    return _error_response('You do not have permission to access this resource.', 403)


def handler400(request, exception):
    return _error_response('Your request could not be processed.', 400)
