import json

from django.test import TestCase
from django.urls import reverse

from admin_site.exceptions import ServiceNotConfigured
from clinic_hms.testing import create_catalog, create_user
from service.models import Service, get_service_by_code


class ServiceCatalogTest(TestCase):
    def setUp(self):
        self.catalog = create_catalog()

    def test_lookup_by_code(self):
        """Codes are stored upper case and looked up case-insensitively"""
        Service.objects.create(code='ecg ', name='ECG', category='procedure', price='2500')
        self.assertEqual(get_service_by_code('ecg').name, 'ECG')
        self.assertEqual(get_service_by_code('CONSULT'), self.catalog['CONSULT'])

    def test_missing_or_inactive_code(self):
        self.catalog['CARD-ACT'].is_active = False
        self.catalog['CARD-ACT'].save()
        with self.assertRaises(ServiceNotConfigured):
            get_service_by_code('CARD-ACT')
        with self.assertRaises(ServiceNotConfigured):
            get_service_by_code('NOPE')


class ServiceViewTest(TestCase):
    def setUp(self):
        create_catalog()
        self.user = create_user(permissions=['service.add_service'])
        self.client.force_login(self.user)

    def test_list_by_category(self):
        response = self.client.get(reverse('service_list_ajax'), {'category': 'lab'})
        codes = sorted(s['code'] for s in json.loads(response.content)['services'])
        self.assertEqual(codes, ['FBC', 'MP'])

    def test_create_service(self):
        response = self.client.post(reverse('service_create_ajax'), {
            'code': 'usg-abd', 'name': 'Abdominal Ultrasound', 'category': 'radiology',
            'price': '12000', 'has_results': 'on', 'is_active': 'on'
        })
        self.assertEqual(response.status_code, 201)
        self.assertEqual(json.loads(response.content)['service']['code'], 'USG-ABD')

        response = self.client.post(reverse('service_create_ajax'), {
            'code': 'FBC', 'name': 'Duplicate', 'category': 'lab', 'price': '10'
        })
        self.assertEqual(response.status_code, 400)
        self.assertIn('code', json.loads(response.content)['errors'])
