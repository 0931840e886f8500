# promos/tests/test_api.py
from datetime import timedelta

from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from shared.constants import PromoStatus, PromoType

from core.tests.factories import make_branch, make_package, make_promo, make_student, make_user
from promos.models import Promo


class PromoApiTest(APITestCase):
    def setUp(self):
        self.user = make_user()
        self.client.force_authenticate(self.user)
        self.branch = make_branch()
        self.package = make_package(self.branch, price='500.00')
        self.today = timezone.localdate()

    def test_create(self):
        response = self.client.post(reverse('promos:promo_list'), {
            'name': 'Early Bird',
            'promo_type': PromoType.FIXED_DISCOUNT,
            'discount_amount': '75.00',
            'promo_code': 'early',
            'start_date': str(self.today),
            'end_date': str(self.today + timedelta(days=14)),
            'package_ids': [self.package.pk],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        data = response.data['data']
        self.assertEqual(data['promo_code'], 'EARLY')
        self.assertEqual(data['package_ids'], [self.package.pk])
        self.assertEqual(data['created_by'], 'staff')

    def test_create_rejects_missing_fields(self):
        response = self.client.post(reverse('promos:promo_list'), {'name': 'Broken'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('start_date', response.data['errors'])

    def test_create_duplicate_code(self):
        make_promo([self.package], promo_code='EARLY')
        response = self.client.post(reverse('promos:promo_list'), {
            'name': 'Copy',
            'promo_type': PromoType.PERCENTAGE_DISCOUNT,
            'discount_percentage': '5.00',
            'promo_code': 'early',
            'start_date': str(self.today),
            'end_date': str(self.today + timedelta(days=14)),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_list_deactivates_stale_and_filters(self):
        make_promo([self.package], name='Old', start_date=self.today - timedelta(days=20),
                   end_date=self.today - timedelta(days=2))
        fresh = make_promo([self.package], name='Fresh')

        response = self.client.get(reverse('promos:promo_list'), {'status': PromoStatus.ACTIVE})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['id'] for row in response.data['data']], [fresh.pk])
        self.assertEqual(response.data['pagination']['total'], 1)
        self.assertEqual(Promo.objects.get(name='Old').status, PromoStatus.INACTIVE)

    def test_update(self):
        promo = make_promo([self.package])
        response = self.client.put(reverse('promos:promo_detail', args=[promo.pk]),
                                   {'max_uses': 3}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['max_uses'], 3)

    def test_detail_not_found(self):
        response = self.client.get(reverse('promos:promo_detail', args=[424242]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_validate_code(self):
        make_promo([self.package], promo_code='SAVE10')
        student = make_student(self.branch)
        response = self.client.post(reverse('promos:validate_code'), {
            'promo_code': 'save10', 'package_id': self.package.pk, 'student_id': student.pk,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['discount'], '50.00')
        self.assertEqual(response.data['data']['base_amount'], '500.00')

    def test_validate_unknown_code(self):
        response = self.client.post(reverse('promos:validate_code'), {'promo_code': 'NOPE'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(response.data['success'])
