# core/handlers.py
"""
DRF exception handler: business exceptions and store constraint violations
become `{"success": false, "message", "error_code", ...}` responses.
"""
import logging

from django.db import IntegrityError
from rest_framework.response import Response
from rest_framework.views import exception_handler

from .exceptions import AcademyException, ConstraintError

logger = logging.getLogger(__name__)


def api_exception_handler(exc, context):
    if isinstance(exc, IntegrityError):
        logger.warning(f"Integrity error translated: {exc}")
        exc = ConstraintError.from_integrity_error(exc)

    if isinstance(exc, AcademyException):
        view = context.get('view')
        logger.info(f"{exc.__class__.__name__} in {view.__class__.__name__ if view else 'view'}: {exc.message}")
        return Response(exc.to_dict(), status=exc.status_code)

    response = exception_handler(exc, context)
    if response is None:
        return None

    detail = response.data
    if isinstance(detail, dict) and 'detail' in detail:
        message = str(detail['detail'])
        errors = None
    else:
        message = "Validation failed"
        errors = detail

    payload = {'success': False, 'message': message}
    if errors is not None:
        payload['errors'] = errors
    response.data = payload
    return response
