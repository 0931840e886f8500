# core/middleware.py
"""
Request logging and business-exception translation for non-DRF views.
DRF views are covered by core.handlers.api_exception_handler.
"""
import logging

from django.conf import settings
from django.db import IntegrityError
from django.http import JsonResponse

from .exceptions import AcademyException, ConstraintError

logger = logging.getLogger(__name__)


# ============ EXCEPTION HANDLING MIDDLEWARE ============

class ExceptionHandlingMiddleware:
    """Renders AcademyException and IntegrityError as JSON; logs system errors."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_exception(self, request, exception):
        if isinstance(exception, IntegrityError):
            exception = ConstraintError.from_integrity_error(exception)

        # Business logic error
        if isinstance(exception, AcademyException):
            logger.warning(f"Business exception on {request.path}: {exception}")
            return JsonResponse(exception.to_dict(), status=exception.status_code)

        # System error
        logger.error(f"System exception on {request.path}: {exception}", exc_info=True)
        return JsonResponse({
            'success': False,
            'message': "System error. Our team has been notified.",
        }, status=500)


# ============ REQUEST LOGGING MIDDLEWARE ============

class RequestLoggingMiddleware:
    """Debug-level structured request/response logging."""

    SKIP_PATHS = ('/static/', '/media/', '/favicon.ico', '/health/')

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if self._should_skip_logging(request):
            return self.get_response(request)

        if settings.DEBUG:
            logger.debug("Request", extra={
                "method": request.method,
                "path": request.path,
                "ip": self._get_client_ip(request),
                "user": getattr(request.user, "id", None) if hasattr(request, 'user') else None,
            })

        response = self.get_response(request)

        if settings.DEBUG:
            logger.debug("Response", extra={
                "path": request.path,
                "status": getattr(response, 'status_code', None),
            })

        return response

    def _should_skip_logging(self, request) -> bool:
        return any(request.path.startswith(path) for path in self.SKIP_PATHS)

    def _get_client_ip(self, request) -> str:
        xff = request.META.get("HTTP_X_FORWARDED_FOR")
        return xff.split(",")[0] if xff else request.META.get("REMOTE_ADDR", "unknown")
