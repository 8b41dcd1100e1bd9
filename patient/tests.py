import json
from datetime import timedelta
from io import StringIO

from django.core.management import call_command
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from admin_site.exceptions import CardInactiveOrExpired, DuplicatePending, EntryNotPending, WorkflowError
from clinic_hms.testing import create_catalog, create_patient, create_user, pay_in_full
from consultation.models import VisitModel
from consultation.workflow import create_visit
from finance.ledger import record_payment
from finance.models import BillingModel
from patient import card, preregistration
from patient.models import PatientModel, PatientSettingModel, CardActivationModel, PreRegistrationModel


class CardLifecycleTest(TestCase):
    def setUp(self):
        self.user = create_user()
        self.catalog = create_catalog()

    def _expire(self, patient):
        PatientModel.objects.filter(pk=patient.pk).update(card_expiry_date=timezone.now() - timedelta(minutes=1))
        patient.refresh_from_db()

    def test_registration_leaves_card_inactive(self):
        """A new patient has an INACTIVE card and an open registration billing"""
        patient, billing = card.register_patient(
            {'first_name': 'Amaka', 'last_name': 'Eze', 'gender': 'female'}, actor=self.user
        )
        self.assertEqual(patient.card_status, PatientModel.CARD_INACTIVE)
        self.assertTrue(patient.card_number.startswith('PT'))
        self.assertEqual(billing.billing_type, BillingModel.CARD)
        self.assertEqual(billing.total_amount, self.catalog['CARD-REG'].price)
        self.assertFalse(card.can_create_visit(patient))

    def test_payment_activates_card(self):
        """Settling the card billing activates the card for the configured validity"""
        PatientSettingModel.objects.create(card_validity_days=60)
        patient, billing = card.register_patient({'first_name': 'Amaka', 'last_name': 'Eze', 'gender': 'female'})

        record_payment(billing, 'cash', '1500')
        patient.refresh_from_db()
        self.assertEqual(patient.card_status, PatientModel.CARD_INACTIVE)

        record_payment(billing, 'cash', '500', actor=self.user)
        patient.refresh_from_db()
        self.assertEqual(patient.card_status, PatientModel.CARD_ACTIVE)
        self.assertEqual((patient.card_expiry_date - patient.card_activated_at).days, 60)

        activation = CardActivationModel.objects.get(patient=patient)
        self.assertEqual(activation.billing, billing)
        self.assertEqual(activation.activated_by, self.user)

    def test_visit_blocked_without_active_card(self):
        patient = create_patient(activate=False)
        with self.assertRaises(CardInactiveOrExpired):
            create_visit(patient)
        self.assertFalse(VisitModel.objects.exists())

    def test_card_expires_lazily(self):
        """An elapsed card reads as EXPIRED and cannot open a visit"""
        patient = create_patient()
        self._expire(patient)

        self.assertEqual(card.refresh_card_status(patient), PatientModel.CARD_EXPIRED)
        self.assertEqual(PatientModel.objects.get(pk=patient.pk).card_status, PatientModel.CARD_EXPIRED)
        with self.assertRaises(CardInactiveOrExpired):
            card.require_active_card(patient)

    def test_request_activation_on_active_card(self):
        patient = create_patient()
        result = card.request_activation(patient, actor=self.user)
        self.assertEqual(result['action'], 'already_active')
        self.assertIsNone(result['billing'])

    def test_request_activation_is_idempotent(self):
        """Repeated requests hand back the same unpaid billing"""
        patient = create_patient()
        self._expire(patient)

        first = card.request_activation(patient, actor=self.user)
        second = card.request_activation(patient, actor=self.user)

        self.assertEqual(first['action'], 'billing_opened')
        self.assertEqual(second['action'], 'pending_billing')
        self.assertEqual(first['billing'].pk, second['billing'].pk)
        self.assertEqual(first['billing'].total_amount, self.catalog['CARD-ACT'].price)

        pay_in_full(second['billing'])
        patient.refresh_from_db()
        self.assertEqual(patient.card_status, PatientModel.CARD_ACTIVE)
        self.assertEqual(patient.card_activations.count(), 2)

    def test_request_activation_returns_registration_billing(self):
        """An unpaid registration billing is reused instead of charging again"""
        patient, billing = card.register_patient({'first_name': 'Tunde', 'last_name': 'Ade', 'gender': 'male'})
        result = card.request_activation(patient)
        self.assertEqual(result['action'], 'pending_billing')
        self.assertEqual(result['billing'].pk, billing.pk)

    def test_free_card_activates_immediately(self):
        self.catalog['CARD-REG'].price = 0
        self.catalog['CARD-REG'].save()
        patient, billing = card.register_patient({'first_name': 'Tunde', 'last_name': 'Ade', 'gender': 'male'})
        self.assertEqual(patient.card_status, PatientModel.CARD_ACTIVE)
        self.assertIsNotNone(billing.settled_at)

    def test_expire_command(self):
        """expire_patient_cards flips elapsed cards, and --dry-run only counts them"""
        patient = create_patient()
        create_patient(first_name='Jane', mobile='08030000002')
        self._expire(patient)

        out = StringIO()
        call_command('expire_patient_cards', '--dry-run', stdout=out)
        self.assertIn('1 card(s) would expire', out.getvalue())
        self.assertEqual(PatientModel.objects.filter(card_status=PatientModel.CARD_EXPIRED).count(), 0)

        call_command('expire_patient_cards', stdout=out)
        self.assertEqual(PatientModel.objects.filter(card_status=PatientModel.CARD_EXPIRED).count(), 1)


class PreRegistrationQueueTest(TestCase):
    def setUp(self):
        self.user = create_user()
        self.catalog = create_catalog()

    def test_entries_ordered_by_priority_then_arrival(self):
        """Urgent entries come first; equal priorities keep arrival order"""
        normal = preregistration.add_entry('Ngozi Okafor', '08011111111')
        urgent = preregistration.add_entry('Bayo Ojo', '08022222222', priority=1)
        normal_later = preregistration.add_entry('Chidi Nwosu', '08033333333', priority=3)
        priority = preregistration.add_entry('Femi Bello', '08044444444', priority=2)

        self.assertEqual(list(preregistration.pending_entries()), [urgent, priority, normal, normal_later])

    def test_duplicate_phone_rejected(self):
        first = preregistration.add_entry('Ngozi Okafor', '08011111111')
        with self.assertRaises(DuplicatePending) as ctx:
            preregistration.add_entry('N. Okafor', ' 08011111111 ')
        self.assertEqual(ctx.exception.context['existing_entry_id'], first.pk)

    def test_duplicate_patient_rejected(self):
        patient = create_patient()
        preregistration.add_entry('John Doe', '08011111111', patient=patient)
        with self.assertRaises(DuplicatePending):
            preregistration.add_entry('John Doe', '08099999999', patient=patient)

    def test_phone_reusable_after_processing(self):
        entry = preregistration.add_entry('Ngozi Okafor', '08011111111')
        preregistration.cancel_entry(entry.pk)
        again = preregistration.add_entry('Ngozi Okafor', '08011111111')
        self.assertEqual(again.status, PreRegistrationModel.PENDING)

    def test_invalid_priority_rejected(self):
        with self.assertRaises(WorkflowError):
            preregistration.add_entry('Ngozi Okafor', '08011111111', priority=5)

    def test_process_creates_visit_for_active_card(self):
        """A linked patient with an active card gets a visit at the entry's priority"""
        patient = create_patient()
        entry = preregistration.add_entry('John Doe', '08030000001', priority=1, patient=patient)

        result = preregistration.process_entry(entry.pk, actor=self.user)

        self.assertEqual(result['action'], 'visit_created')
        self.assertEqual(result['visit'].status, VisitModel.PENDING_PAYMENT)
        self.assertEqual(result['visit'].priority, 1)
        entry.refresh_from_db()
        self.assertEqual(entry.status, PreRegistrationModel.COMPLETED)
        self.assertEqual(entry.visit, result['visit'])
        self.assertEqual(entry.processed_by, self.user)

    def test_process_redirects_unregistered(self):
        """Walk-ins without a patient record are sent to registration with their details"""
        entry = preregistration.add_entry('Ngozi Okafor', '08011111111', priority=2)
        result = preregistration.process_entry(entry.pk)

        self.assertEqual(result['action'], 'redirect_to_registration')
        self.assertEqual(result['reason'], 'not_registered')
        self.assertEqual(result['prefill']['phone'], '08011111111')
        self.assertFalse(VisitModel.objects.exists())

    def test_process_redirects_inactive_card(self):
        patient = create_patient(activate=False)
        entry = preregistration.add_entry('John Doe', '08030000001', patient=patient)
        result = preregistration.process_entry(entry.pk)
        self.assertEqual(result['reason'], 'card_inactive')

    def test_entry_processed_once(self):
        entry = preregistration.add_entry('Ngozi Okafor', '08011111111')
        preregistration.cancel_entry(entry.pk, actor=self.user)
        with self.assertRaises(EntryNotPending):
            preregistration.process_entry(entry.pk)
        with self.assertRaises(EntryNotPending):
            preregistration.cancel_entry(entry.pk)


class PatientViewTest(TestCase):
    def setUp(self):
        self.user = create_user(permissions=[
            'patient.add_patientmodel', 'patient.change_patientmodel',
            'patient.add_preregistrationmodel', 'patient.change_preregistrationmodel',
        ])
        self.client.force_login(self.user)
        self.catalog = create_catalog()

    def test_register_patient_ajax(self):
        response = self.client.post(reverse('register_patient_ajax'), {
            'first_name': 'amaka', 'last_name': 'eze', 'gender': 'female', 'mobile': '08055555555'
        })
        self.assertEqual(response.status_code, 201)
        data = json.loads(response.content)
        self.assertEqual(data['patient']['full_name'], 'Amaka Eze')
        self.assertEqual(data['patient']['card_status'], 'inactive')
        self.assertEqual(data['billing']['total_amount'], '2000.00')

    def test_register_patient_validation(self):
        response = self.client.post(reverse('register_patient_ajax'), {'first_name': 'A', 'gender': 'male'})
        self.assertEqual(response.status_code, 400)
        data = json.loads(response.content)
        self.assertEqual(data['code'], 'validation_error')
        self.assertIn('last_name', data['errors'])

    def test_pre_registration_duplicate_conflict(self):
        url = reverse('pre_registration_add_ajax')
        payload = {'full_name': 'Ngozi Okafor', 'phone': '08011111111'}
        self.assertEqual(self.client.post(url, payload).status_code, 201)

        response = self.client.post(url, payload)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(json.loads(response.content)['code'], 'duplicate_pending')

    def test_pre_registration_list_ajax(self):
        preregistration.add_entry('Ngozi Okafor', '08011111111')
        preregistration.add_entry('Bayo Ojo', '08022222222', priority=1)
        response = self.client.get(reverse('pre_registration_list_ajax'))
        names = [e['full_name'] for e in json.loads(response.content)['entries']]
        self.assertEqual(names, ['Bayo Ojo', 'Ngozi Okafor'])

    def test_card_status_ajax_reports_expiry(self):
        patient = create_patient()
        PatientModel.objects.filter(pk=patient.pk).update(card_expiry_date=timezone.now() - timedelta(days=1))

        response = self.client.get(reverse('patient_card_status_ajax', args=[patient.pk]))
        data = json.loads(response.content)
        self.assertEqual(data['patient']['card_status'], 'expired')
        self.assertFalse(data['can_create_visit'])
