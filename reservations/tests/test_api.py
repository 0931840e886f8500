# reservations/tests/test_api.py
from datetime import timedelta
from decimal import Decimal

from django.test import override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from shared.constants import EnrollmentType, ReservationStatus

from core.tests.factories import (
    make_branch, make_class, make_invoice, make_package, make_promo, make_reservation, make_student, make_user, pay,
)
from reservations.models import Reservation


class ReservationApiTest(APITestCase):
    def setUp(self):
        self.user = make_user()
        self.client.force_authenticate(self.user)
        self.branch = make_branch()
        self.academic_class = make_class(self.branch, max_students=1)
        self.student = make_student(self.branch)
        self.package = make_package(self.branch, price='500.00')

    def test_create(self):
        response = self.client.post(reverse('reservations:reservation_list'), {
            'student_id': self.student.pk,
            'class_id': self.academic_class.pk,
            'reservation_fee': '50.00',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        data = response.data['data']
        self.assertEqual(data['status'], ReservationStatus.RESERVED)
        self.assertEqual(data['reserved_by'], 'staff')
        self.assertEqual(data['class_id'], self.academic_class.pk)

    def test_create_duplicate_is_conflict(self):
        make_reservation(self.student, self.academic_class)
        response = self.client.post(reverse('reservations:reservation_list'), {
            'student_id': self.student.pk, 'class_id': self.academic_class.pk,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error_code'], 'DUPLICATE_RESERVATION')

    def test_create_requires_ids(self):
        response = self.client.post(reverse('reservations:reservation_list'), {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('student_id', response.data['errors'])

    @override_settings(RESERVATION_SWEEP_ON_READ=True)
    def test_list_sweeps_and_filters(self):
        overdue = make_reservation(self.student, self.academic_class,
                                   due_date=timezone.localdate() - timedelta(days=1))
        other_class = make_class(self.branch, name='Violin')
        make_reservation(self.student, other_class)

        response = self.client.get(reverse('reservations:reservation_list'),
                                   {'class_id': self.academic_class.pk})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['id'] for row in response.data['data']], [overdue.pk])
        self.assertEqual(response.data['data'][0]['status'], ReservationStatus.EXPIRED)
        self.assertEqual(response.data['pagination']['total'], 1)

    def test_detail_and_cancel(self):
        reservation = make_reservation(self.student, self.academic_class)
        url = reverse('reservations:reservation_detail', args=[reservation.pk])

        self.assertEqual(self.client.get(url).data['data']['id'], reservation.pk)
        response = self.client.delete(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['status'], ReservationStatus.CANCELLED)
        self.assertEqual(Reservation.objects.get(pk=reservation.pk).status, ReservationStatus.CANCELLED)

    def test_detail_not_found(self):
        response = self.client.get(reverse('reservations:reservation_detail', args=[999999]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_upgrade(self):
        fee_invoice = make_invoice(self.branch, self.student, amount='50.00')
        reservation = make_reservation(self.student, self.academic_class, invoice=fee_invoice)
        pay(fee_invoice)
        promo = make_promo([self.package])

        response = self.client.put(reverse('reservations:upgrade_reservation', args=[reservation.pk]), {
            'enrollment_type': EnrollmentType.FULLPAYMENT,
            'package_id': self.package.pk,
            'promo_id': promo.pk,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data['data']
        self.assertEqual(data['reservation']['status'], ReservationStatus.UPGRADED)
        self.assertEqual(Decimal(data['invoice']['amount']), Decimal('400.00'))
        self.assertTrue(data['promo']['applied'])
        self.assertIsNone(data['installment_profile'])

    def test_upgrade_full_class_returns_alternatives(self):
        reservation = make_reservation(self.student, self.academic_class)
        make_reservation(make_student(self.branch, 'Ben Ong'), self.academic_class)
        alternative = make_class(self.branch, name='Piano B', max_students=4)

        response = self.client.put(reverse('reservations:upgrade_reservation', args=[reservation.pk]), {
            'enrollment_type': EnrollmentType.FULLPAYMENT, 'package_id': self.package.pk,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertTrue(response.data['class_full'])
        self.assertEqual(response.data['alternative_classes'][0]['class_id'], alternative.pk)

    def test_upgrade_malformed_pricing_list_is_bad_request(self):
        reservation = make_reservation(self.student, self.academic_class)
        response = self.client.put(reverse('reservations:upgrade_reservation', args=[reservation.pk]), {
            'enrollment_type': EnrollmentType.PER_PHASE,
            'per_phase_amount': '200.00',
            'selected_pricing_lists': [{'name': 'Tuition'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])

    def test_update_status(self):
        reservation = make_reservation(self.student, self.academic_class)
        url = reverse('reservations:update_status', args=[reservation.pk])

        response = self.client.put(url, {'status': ReservationStatus.FEE_PAID}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        response = self.client.put(url, {'status': ReservationStatus.RESERVED}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error_code'], 'INVALID_TRANSITION')

    def test_expire_unpaid(self):
        reservation = make_reservation(self.student, self.academic_class,
                                       due_date=timezone.localdate() - timedelta(days=2))
        response = self.client.post(reverse('reservations:expire_unpaid'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['expired_count'], 1)
        self.assertEqual(response.data['data']['expired_reservation_ids'], [reservation.pk])

    def test_alternatives(self):
        alternative = make_class(self.branch, name='Piano B')
        response = self.client.get(reverse('reservations:alternative_classes', args=[self.academic_class.pk]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['alternative_classes'][0]['class_id'], alternative.pk)

    def test_alternatives_bad_limit(self):
        response = self.client.get(reverse('reservations:alternative_classes', args=[self.academic_class.pk]),
                                   {'limit': 'many'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
