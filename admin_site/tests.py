import json
from unittest import mock

from django.db import OperationalError
from django.test import TestCase, override_settings
from django.urls import reverse

from admin_site.exceptions import BillingNotSettled, Unavailable
from admin_site.models import ActivityLogModel
from admin_site.utils import with_storage_retry, get_actor_display
from clinic_hms.testing import create_catalog, create_consultant, create_patient, create_user
from consultation.workflow import create_visit


class StorageRetryTest(TestCase):
    @override_settings(STORAGE_RETRY_ATTEMPTS=3)
    def test_transient_errors_retried(self):
        """A transient database error is retried until the call succeeds"""
        calls = mock.Mock(side_effect=[OperationalError('locked'), 'ok'], __name__='record_payment')
        with mock.patch('admin_site.utils.time.sleep'):
            self.assertEqual(with_storage_retry(calls)(), 'ok')
        self.assertEqual(calls.call_count, 2)

    @override_settings(STORAGE_RETRY_ATTEMPTS=2)
    def test_gives_up_with_unavailable(self):
        calls = mock.Mock(side_effect=OperationalError('gone'), __name__='save_payment')
        with mock.patch('admin_site.utils.time.sleep'):
            with self.assertRaises(Unavailable):
                with_storage_retry(calls)()
        self.assertEqual(calls.call_count, 2)

    def test_business_errors_not_retried(self):
        calls = mock.Mock(side_effect=BillingNotSettled(), __name__='assign')
        with self.assertRaises(BillingNotSettled):
            with_storage_retry(calls)()
        self.assertEqual(calls.call_count, 1)


class ActivityLogTest(TestCase):
    def setUp(self):
        create_catalog()

    def test_actor_display(self):
        doctor = create_consultant()
        self.assertEqual(get_actor_display(None), 'System')
        self.assertEqual(get_actor_display(doctor.user), 'Dr. Ada Obi')
        self.assertEqual(get_actor_display(create_user(username='nurse1')), 'nurse1')

    def test_workflow_writes_activity(self):
        """Registration, payment and visit transitions all leave activity entries"""
        user = create_user()
        patient = create_patient(actor=user)
        create_visit(patient, actor=user)

        keywords = set(ActivityLogModel.objects.values_list('keywords', flat=True))
        self.assertTrue({'patient__create', 'payment__create', 'billing__settled', 'card__activate',
                         'visit__open_consultation_billing'} <= keywords)
        self.assertIn(user.username, ActivityLogModel.objects.filter(keywords='patient__create').get().log)


class AdminSiteViewTest(TestCase):
    def setUp(self):
        create_catalog()
        self.user = create_user(permissions=['admin_site.view_activitylogmodel'])
        self.client.force_login(self.user)

    def test_dashboard(self):
        create_consultant()
        patient = create_patient(actor=self.user)
        create_visit(patient)
        create_visit(create_patient(first_name='Ike', mobile='08030000009', activate=False), is_emergency=True)

        response = self.client.get(reverse('admin_dashboard'))
        data = json.loads(response.content)
        self.assertEqual(data['visits']['total'], 2)
        self.assertEqual(data['visits']['emergency'], 1)
        self.assertEqual(data['cards'], {'active': 1, 'inactive': 1, 'expired': 0})
        self.assertEqual(data['pending_emergency_billings'], 1)
        self.assertEqual(len(data['queues']['doctors']), 1)

    def test_activity_log_filter(self):
        create_patient(actor=self.user)
        response = self.client.get(reverse('activity_log_ajax'), {'category': 'finance'})
        logs = json.loads(response.content)['logs']
        self.assertTrue(logs)
        self.assertTrue(all(log['category'] == 'finance' for log in logs))

    def test_dashboard_requires_login(self):
        self.client.logout()
        response = self.client.get(reverse('admin_dashboard'))
        self.assertEqual(response.status_code, 302)

    def test_unknown_url_is_json_404(self):
        with self.settings(DEBUG=False):
            response = self.client.get('/portal/no-such-page')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(json.loads(response.content)['code'], 'not_found')
