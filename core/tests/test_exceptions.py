# core/tests/test_exceptions.py
from django.db import IntegrityError
from django.test import SimpleTestCase
from rest_framework.exceptions import NotAuthenticated, ValidationError as DRFValidationError

from core.exceptions import (
    CapacityError, ConflictError, ConstraintError, NotFoundError, StateTransitionError, ValidationError,
)
from core.handlers import api_exception_handler


class ExceptionTaxonomyTest(SimpleTestCase):
    def test_status_codes(self):
        self.assertEqual(ValidationError().status_code, 400)
        self.assertEqual(NotFoundError().status_code, 404)
        self.assertEqual(ConflictError().status_code, 409)
        self.assertEqual(StateTransitionError().status_code, 409)
        self.assertEqual(CapacityError().status_code, 409)

    def test_state_transition_is_a_conflict(self):
        error = StateTransitionError("nope")
        self.assertIsInstance(error, ConflictError)
        self.assertEqual(error.error_code, 'INVALID_TRANSITION')

    def test_capacity_error_payload(self):
        error = CapacityError("Class is full", details={'alternative_classes': [{'class_id': 7}]})
        payload = error.to_dict()
        self.assertFalse(payload['success'])
        self.assertEqual(payload['error_code'], 'CLASS_FULL')
        self.assertTrue(payload['class_full'])
        self.assertFalse(payload['class_inactive'])
        self.assertEqual(error.alternative_classes, [{'class_id': 7}])

    def test_inactive_class_error_code(self):
        error = CapacityError("Class is inactive", class_inactive=True)
        self.assertEqual(error.error_code, 'CLASS_INACTIVE')
        self.assertTrue(error.to_dict()['class_inactive'])

    def test_integrity_error_translation(self):
        unique = ConstraintError.from_integrity_error(IntegrityError("UNIQUE constraint failed: promos_promo.promo_code"))
        self.assertEqual(unique.message, "Duplicate entry. This record already exists.")
        self.assertEqual(unique.status_code, 409)

        foreign = ConstraintError.from_integrity_error(IntegrityError("FOREIGN KEY constraint failed"))
        self.assertEqual(foreign.message, "Referenced record does not exist.")
        self.assertEqual(foreign.status_code, 400)


class ApiExceptionHandlerTest(SimpleTestCase):
    def test_business_exception(self):
        response = api_exception_handler(NotFoundError("Reservation 5 not found"), {})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data['message'], "Reservation 5 not found")
        self.assertEqual(response.data['error_code'], 'NOT_FOUND')

    def test_integrity_error(self):
        response = api_exception_handler(IntegrityError("duplicate key value violates unique constraint"), {})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['error_code'], 'CONSTRAINT_ERROR')

    def test_drf_exceptions_are_reshaped(self):
        response = api_exception_handler(NotAuthenticated(), {})
        self.assertFalse(response.data['success'])
        self.assertIn('message', response.data)

        response = api_exception_handler(DRFValidationError({'name': ['required']}), {})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['errors'], {'name': ['required']})

    def test_unknown_exception_is_left_to_django(self):
        self.assertIsNone(api_exception_handler(RuntimeError("boom"), {}))
