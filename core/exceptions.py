# core/exceptions.py
class AcademyException(Exception):
    """Base exception for all academy billing and enrollment errors."""

    status_code = 400

    def __init__(self, message=None, user_friendly=True, details=None, error_code=None):
        self.message = message or "An error occurred"
        self.user_friendly = user_friendly
        self.details = details or {}
        self.error_code = error_code
        super().__init__(self.message)

    def to_dict(self):
        payload = {
            'success': False,
            'message': self.message if self.user_friendly else "Operation failed.",
            'error_code': self.error_code,
        }
        payload.update(self.details)
        return payload


class ValidationError(AcademyException):
    """Malformed or missing input. Raised before any transaction starts."""
    status_code = 400

    def __init__(self, message=None, user_friendly=True, details=None):
        super().__init__(message or "Validation failed", user_friendly, details, "VALIDATION_ERROR")


class NotFoundError(AcademyException):
    """Reservation, class, student, package, promo or invoice missing."""
    status_code = 404

    def __init__(self, message=None, user_friendly=True, details=None):
        super().__init__(message or "Record not found", user_friendly, details, "NOT_FOUND")


class ConflictError(AcademyException):
    """Duplicate reservation, already-enrolled student, promo code mismatch, duplicate promo code."""
    status_code = 409

    def __init__(self, message=None, user_friendly=True, details=None, error_code="CONFLICT"):
        super().__init__(message or "Conflicting record exists", user_friendly, details, error_code)


class StateTransitionError(ConflictError):
    """Reservation status change not allowed from the current status."""

    def __init__(self, message=None, user_friendly=True, details=None):
        super().__init__(message or "Status change not allowed", user_friendly, details, "INVALID_TRANSITION")


class CapacityError(AcademyException):
    """Class full or no longer active; details carry alternative classes."""
    status_code = 409

    def __init__(self, message=None, user_friendly=True, details=None, class_inactive=False):
        details = dict(details or {})
        details.setdefault('class_full', not class_inactive)
        details.setdefault('class_inactive', class_inactive)
        details.setdefault('alternative_classes', [])
        error_code = "CLASS_INACTIVE" if class_inactive else "CLASS_FULL"
        super().__init__(message or "Class is full", user_friendly, details, error_code)

    @property
    def alternative_classes(self):
        return self.details.get('alternative_classes', [])


class InventoryError(AcademyException):
    """Merchandise inventory is insufficient."""
    status_code = 409

    def __init__(self, message=None, user_friendly=True, details=None):
        super().__init__(message or "Insufficient inventory", user_friendly, details, "INVENTORY_ERROR")


class ConstraintError(AcademyException):
    """Store rejected a write on a uniqueness or foreign-key constraint."""
    status_code = 409

    def __init__(self, message=None, user_friendly=True, details=None):
        super().__init__(message or "Database constraint violated", user_friendly, details, "CONSTRAINT_ERROR")

    @classmethod
    def from_integrity_error(cls, error):
        """Translate a django.db.IntegrityError into a user-facing message."""
        text = str(error).lower()
        if 'unique' in text or 'duplicate' in text:
            return cls("Duplicate entry. This record already exists.", details={'detail': str(error)})
        if 'foreign key' in text:
            exc = cls("Referenced record does not exist.", details={'detail': str(error)})
            exc.status_code = 400
            return exc
        if 'not null' in text:
            exc = cls("Required field is missing.", details={'detail': str(error)})
            exc.status_code = 400
            return exc
        return cls(details={'detail': str(error)})
