import json
from decimal import Decimal
from io import BytesIO

import openpyxl
from django.test import TestCase
from django.urls import reverse

from admin_site.exceptions import (
    AlreadyAcknowledged, BillingAlreadySettled, InvalidAmount, InvalidPaymentMethodData,
    UnsupportedBillingOperation
)
from clinic_hms.testing import create_catalog, create_patient, create_user
from consultation.models import VisitModel
from consultation.workflow import ACKNOWLEDGE_EMERGENCY, cancel_visit, create_visit
from finance import ledger, emergency
from finance.models import BillingModel, InsuranceProviderModel
from finance.money import to_cents, quantize_money
from finance.signals import billing_settled


class MoneyTest(TestCase):
    def test_cents_rounding(self):
        """Money is rounded half up to the cent before comparison"""
        self.assertEqual(to_cents('10.005'), 1001)
        self.assertEqual(to_cents(Decimal('0.1') + Decimal('0.2')), 30)
        self.assertEqual(quantize_money(None), Decimal('0.00'))


class BillingLedgerTest(TestCase):
    def setUp(self):
        self.user = create_user()
        self.catalog = create_catalog()
        self.patient = create_patient(actor=self.user)
        self.billing = ledger.open_billing(
            self.patient, BillingModel.LAB,
            services=[self.catalog['FBC'], (self.catalog['MP'], 2)], actor=self.user
        )
        self.settled = []
        billing_settled.connect(self._on_settled)

    def tearDown(self):
        billing_settled.disconnect(self._on_settled)

    def _on_settled(self, sender, billing, **kwargs):
        self.settled.append(billing.pk)

    def test_total_is_sum_of_lines(self):
        """Billing total is unit price times quantity over all lines"""
        self.assertEqual(ledger.billing_total(self.billing), Decimal('6000.00'))
        self.assertEqual(self.billing.total_amount, Decimal('6000.00'))
        self.assertTrue(self.billing.billing_number.startswith('BIL'))

    def test_partial_payment_is_not_settled(self):
        """A partial payment leaves the billing partially paid"""
        ledger.record_payment(self.billing, 'cash', '2500', actor=self.user)
        self.billing.refresh_from_db()

        self.assertFalse(ledger.is_settled(self.billing))
        self.assertEqual(self.billing.status, BillingModel.PARTIALLY_PAID)
        self.assertEqual(ledger.outstanding_amount(self.billing), Decimal('3500.00'))
        self.assertIsNone(self.billing.settled_at)
        self.assertEqual(self.settled, [])

    def test_payments_settle_billing_once(self):
        """Reaching the total settles the billing and notifies exactly once"""
        ledger.record_payment(self.billing, 'cash', '4000', actor=self.user)
        ledger.record_payment(self.billing, 'cash', '2000', actor=self.user)
        ledger.record_payment(self.billing, 'cash', '100', actor=self.user)
        self.billing.refresh_from_db()

        self.assertTrue(ledger.is_settled(self.billing))
        self.assertEqual(self.billing.status, BillingModel.PAID)
        self.assertIsNotNone(self.billing.settled_at)
        self.assertEqual(self.settled, [self.billing.pk])

    def test_overpayment_reports_change_due(self):
        """Overpaying is accepted and the excess is reported"""
        ledger.record_payment(self.billing, 'cash', '6500.50', actor=self.user)
        self.assertEqual(ledger.overpaid_amount(self.billing), Decimal('500.50'))
        self.assertEqual(ledger.outstanding_amount(self.billing), Decimal('0.00'))

    def test_non_positive_amount_rejected(self):
        """Zero and negative payments are refused"""
        for amount in ('0', '-10', '0.001'):
            with self.assertRaises(InvalidAmount):
                ledger.record_payment(self.billing, 'cash', amount)
        self.assertEqual(self.billing.payments.count(), 0)

    def test_bank_payment_requires_reference(self):
        """Bank payments need a bank name and transaction number"""
        with self.assertRaises(InvalidPaymentMethodData) as ctx:
            ledger.record_payment(self.billing, 'bank', '1000', bank_name='GTB')
        self.assertEqual(ctx.exception.context['missing_fields'], ['trans_number'])

        payment = ledger.record_payment(self.billing, 'bank', '1000', bank_name='GTB', trans_number='TX-1')
        self.assertEqual(payment.trans_number, 'TX-1')

    def test_insurance_payment_requires_active_provider(self):
        """Insurance payments need an active provider"""
        InsuranceProviderModel.objects.create(name='Old Cover', code='OLD', status='inactive')
        provider = InsuranceProviderModel.objects.create(name='Cover Plus', code='cvp')

        with self.assertRaises(InvalidPaymentMethodData):
            ledger.record_payment(self.billing, 'insurance', '1000')
        with self.assertRaises(InvalidPaymentMethodData):
            ledger.record_payment(self.billing, 'insurance', '1000', insurance='OLD')

        payment = ledger.record_payment(self.billing, 'insurance', '1000', insurance='CVP')
        self.assertEqual(payment.insurance, provider)

    def test_unknown_method_rejected(self):
        with self.assertRaises(InvalidPaymentMethodData):
            ledger.record_payment(self.billing, 'crypto', '1000')

    def test_lines_frozen_after_settlement(self):
        """Services cannot be added or removed once the billing is settled"""
        ledger.record_payment(self.billing, 'cash', '6000')
        line = self.billing.services.first()

        with self.assertRaises(BillingAlreadySettled):
            ledger.add_service(self.billing, self.catalog['FBC'])
        with self.assertRaises(BillingAlreadySettled):
            ledger.remove_service(self.billing, line.pk)
        self.assertEqual(self.billing.services.count(), 2)

    def test_removing_line_can_settle(self):
        """Dropping a line that leaves the payments covering the rest settles the billing"""
        ledger.record_payment(self.billing, 'cash', '3000')
        mp_line = self.billing.services.get(service=self.catalog['MP'])

        ledger.remove_service(self.billing, mp_line.pk)

        self.assertTrue(ledger.is_settled(self.billing))
        self.assertIsNotNone(self.billing.settled_at)
        self.assertEqual(self.settled, [self.billing.pk])

    def test_free_billing_settles_on_open(self):
        """A billing whose lines are all free is settled as soon as it is checked"""
        billing = ledger.open_billing(self.patient, BillingModel.OTHER,
                                      services=[(self.catalog['PCM'], 1, '0')])
        self.assertTrue(ledger.settle_if_covered(billing))
        self.assertEqual(billing.status, BillingModel.PAID)

    def test_first_unsettled_billing(self):
        """Gate lookup distinguishes a missing billing from an unpaid one"""
        visit = create_visit(self.patient, actor=self.user)
        consult = ledger.billings_for_visit(visit, BillingModel.CONSULTATION).get()

        self.assertEqual(ledger.first_unsettled_billing(visit, BillingModel.CONSULTATION), (consult, False))
        self.assertEqual(ledger.first_unsettled_billing(visit, BillingModel.LAB), (None, True))


class EmergencyLedgerTest(TestCase):
    def setUp(self):
        self.user = create_user()
        self.catalog = create_catalog()
        self.patient = create_patient(actor=self.user, activate=False)
        self.visit = create_visit(self.patient, is_emergency=True, actor=self.user)
        self.billing = emergency.pending_emergency_billing(self.visit)

    def test_emergency_visit_opens_running_bill(self):
        """Emergency visits open one pending emergency billing without a card"""
        self.assertIsNotNone(self.billing)
        self.assertEqual(self.billing.status, BillingModel.EMERGENCY_PENDING)
        self.assertEqual(emergency.get_or_create_emergency_billing(self.visit), self.billing)

    def test_services_accrue_without_payment(self):
        """Charges accrue on the running bill and stay unsettled"""
        emergency.add_emergency_service(self.billing, self.catalog['ER-DRIP'], quantity=2)
        self.assertEqual(ledger.billing_total(self.billing), Decimal('9000.00'))
        self.assertFalse(ledger.is_settled(self.billing))
        self.assertEqual(ledger.outstanding_amount(self.billing), Decimal('9000.00'))

    def test_itemised_payment_not_supported(self):
        with self.assertRaises(UnsupportedBillingOperation):
            ledger.record_payment(self.billing, 'cash', '100')

    def test_acknowledgment_freezes_total(self):
        """Acknowledging freezes the total and settles the billing"""
        emergency.add_emergency_service(self.billing, self.catalog['ER-DRIP'])
        emergency.acknowledge_payment(self.billing, notes='Paid at discharge', actor=self.user)

        self.assertEqual(self.billing.status, BillingModel.PAID)
        self.assertEqual(self.billing.frozen_total, Decimal('4500.00'))
        self.assertEqual(self.billing.acknowledged_by, self.user)
        self.assertTrue(ledger.is_settled(self.billing))

        with self.assertRaises(BillingAlreadySettled):
            emergency.add_emergency_service(self.billing, self.catalog['ER-DRIP'])
        self.assertEqual(ledger.billing_total(self.billing), Decimal('4500.00'))

    def test_acknowledgment_completes_visit(self):
        """Acknowledging the emergency payment closes the visit"""
        emergency.acknowledge_payment(self.billing, actor=self.user)

        self.visit.refresh_from_db()
        self.assertEqual(self.visit.status, VisitModel.COMPLETED)
        self.assertIsNotNone(self.visit.completed_at)
        self.assertEqual(self.visit.status_history.last().event, ACKNOWLEDGE_EMERGENCY)

    def test_acknowledgment_after_visit_closed(self):
        """A visit already completed or cancelled keeps its status"""
        cancel_visit(self.visit)
        emergency.acknowledge_payment(self.billing, actor=self.user)

        self.visit.refresh_from_db()
        self.billing.refresh_from_db()
        self.assertEqual(self.visit.status, VisitModel.CANCELLED)
        self.assertEqual(self.billing.status, BillingModel.PAID)

    def test_second_acknowledgment_rejected(self):
        emergency.acknowledge_payment(self.billing, actor=self.user)
        with self.assertRaises(AlreadyAcknowledged):
            emergency.acknowledge_payment(self.billing, actor=self.user)

    def test_acknowledge_requires_emergency_billing(self):
        card_billing = BillingModel.objects.filter(patient=self.patient, billing_type=BillingModel.CARD).get()
        with self.assertRaises(UnsupportedBillingOperation):
            emergency.acknowledge_payment(card_billing)


class FinanceViewTest(TestCase):
    def setUp(self):
        self.user = create_user(permissions=[
            'finance.add_billpaymentmodel', 'finance.view_billpaymentmodel',
            'finance.change_billingmodel', 'finance.add_billingservicemodel',
        ])
        self.client.force_login(self.user)
        self.catalog = create_catalog()
        self.patient = create_patient(actor=self.user)
        self.billing = ledger.open_billing(self.patient, BillingModel.LAB, services=[self.catalog['FBC']])

    def test_record_payment_ajax(self):
        """Payment endpoint returns the updated billing and change due"""
        response = self.client.post(
            reverse('record_payment_ajax', args=[self.billing.pk]),
            data=json.dumps({'method': 'cash', 'amount': '3500'}), content_type='application/json'
        )
        self.assertEqual(response.status_code, 201)
        data = json.loads(response.content)
        self.assertTrue(data['success'])
        self.assertEqual(data['change_due'], '500.00')
        self.assertTrue(data['billing']['is_settled'])

    def test_record_payment_error_is_json(self):
        """Workflow errors come back with their code and status"""
        response = self.client.post(
            reverse('record_payment_ajax', args=[self.billing.pk]),
            {'method': 'bank', 'amount': '100'}
        )
        self.assertEqual(response.status_code, 400)
        data = json.loads(response.content)
        self.assertFalse(data['success'])
        self.assertEqual(data['code'], 'invalid_payment_method_data')

    def test_add_service_after_settlement_conflicts(self):
        ledger.record_payment(self.billing, 'cash', '3000')
        response = self.client.post(
            reverse('billing_add_service_ajax', args=[self.billing.pk]), {'service': self.catalog['MP'].pk}
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(json.loads(response.content)['code'], 'billing_already_settled')

    def test_payment_requires_permission(self):
        other = create_user(username='clerk')
        self.client.force_login(other)
        response = self.client.post(reverse('record_payment_ajax', args=[self.billing.pk]),
                                    {'method': 'cash', 'amount': '100'})
        self.assertEqual(response.status_code, 403)

    def test_export_payments_excel(self):
        """Payments export is a workbook with one row per payment and a summary"""
        ledger.record_payment(self.billing, 'cash', '1000')
        ledger.record_payment(self.billing, 'bank', '2000', bank_name='GTB', trans_number='TX-9')

        response = self.client.get(reverse('export_payments_excel'))
        self.assertEqual(response.status_code, 200)
        self.assertIn('attachment', response['Content-Disposition'])

        worksheet = openpyxl.load_workbook(BytesIO(response.content)).active
        self.assertEqual(worksheet.title, 'Payments')
        self.assertEqual(worksheet.cell(row=1, column=2).value, 'Patient Name')
        # card payment from create_patient plus the two above
        methods = [worksheet.cell(row=r, column=6).value for r in range(2, 5)]
        self.assertEqual(methods, ['CASH', 'CASH', 'BANK'])
        self.assertEqual(worksheet.cell(row=4, column=8).value, 'GTB / TX-9')

    def test_emergency_acknowledge_ajax(self):
        visit = create_visit(self.patient, is_emergency=True)
        billing = emergency.pending_emergency_billing(visit)
        emergency.add_emergency_service(billing, self.catalog['ER-DRIP'])

        response = self.client.post(reverse('emergency_acknowledge_ajax', args=[billing.pk]),
                                    {'notes': 'Paid by relative'})
        self.assertEqual(response.status_code, 200)
        data = json.loads(response.content)
        self.assertEqual(data['billing']['status'], BillingModel.PAID)
        self.assertEqual(data['visit_status'], VisitModel.COMPLETED)

        again = self.client.post(reverse('emergency_acknowledge_ajax', args=[billing.pk]))
        self.assertEqual(json.loads(again.content)['code'], 'already_acknowledged')
