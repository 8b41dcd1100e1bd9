import json
from decimal import Decimal
from unittest import mock

from django.db.models import F
from django.test import TestCase
from django.urls import reverse

from admin_site.exceptions import (
    BillingNotSettled, ConcurrentModification, InvalidTransition, NoDoctorAvailable, OrdersOutstanding,
    VisitTerminal, WorkflowError
)
from clinic_hms.testing import create_catalog, create_consultant, create_patient, create_user, pay_in_full
from consultation import orders, workflow
from consultation.models import ConsultantModel, ConsultationSettingsModel, PatientVitalsModel, VisitModel
from consultation.queue import doctors_queue_status, queue_for, recommend_doctor, workload, workloads
from finance import ledger
from finance.emergency import pending_emergency_billing
from finance.models import BillingModel
from laboratory.models import LabTestOrderModel
from pharmacy.models import DrugOrderModel
from scan.models import ScanOrderModel


def consultation_billing(visit):
    return ledger.billings_for_visit(visit, BillingModel.CONSULTATION).get()


class VisitWorkflowTest(TestCase):
    def setUp(self):
        self.user = create_user()
        self.catalog = create_catalog()
        self.doctor = create_consultant()
        self.patient = create_patient(actor=self.user)

    def _waiting_for_doctor(self, **kwargs):
        visit = workflow.create_visit(self.patient, actor=self.user, **kwargs)
        pay_in_full(consultation_billing(visit))
        visit.refresh_from_db()
        workflow.record_vitals_and_assign(visit, {'temperature': '36.8'}, actor=self.user)
        return visit

    def test_new_visit_waits_for_consultation_payment(self):
        """A regular visit opens its consultation billing and waits for payment"""
        visit = workflow.create_visit(self.patient, actor=self.user)

        self.assertEqual(visit.status, VisitModel.PENDING_PAYMENT)
        self.assertTrue(visit.visit_uid.startswith('VISIT-'))
        billing = consultation_billing(visit)
        self.assertEqual(billing.total_amount, self.catalog['CONSULT'].price)

    def test_consultant_fee_overrides_catalog_price(self):
        self.doctor.consultation_fee = 7500
        self.doctor.save()
        visit = workflow.create_visit(self.patient, consultant=self.doctor)
        self.assertEqual(str(consultation_billing(visit).total_amount), '7500.00')
        self.assertEqual(visit.suggested_consultant, self.doctor)

    def test_payment_moves_visit_to_triage(self):
        visit = workflow.create_visit(self.patient, actor=self.user)
        pay_in_full(consultation_billing(visit), actor=self.user)
        visit.refresh_from_db()
        self.assertEqual(visit.status, VisitModel.WAITING_FOR_TRIAGE)

    def test_triage_requires_settled_consultation(self):
        """Assigning a doctor is refused while the consultation billing is unpaid"""
        visit = workflow.create_visit(self.patient, actor=self.user)
        VisitModel.objects.filter(pk=visit.pk).update(status=VisitModel.WAITING_FOR_TRIAGE)

        with self.assertRaises(BillingNotSettled) as ctx:
            workflow.record_vitals_and_assign(visit, {'temperature': '37.0'})

        self.assertEqual(ctx.exception.context['outstanding_amount'], self.catalog['CONSULT'].price)
        self.assertFalse(PatientVitalsModel.objects.filter(visit=visit).exists())

    def test_full_visit_history(self):
        """Each transition is recorded in order"""
        visit = self._waiting_for_doctor()
        self.assertEqual(visit.status, VisitModel.WAITING_FOR_DOCTOR)
        self.assertEqual(visit.consultant, self.doctor)

        workflow.start_review(visit, actor=self.user)
        workflow.complete_visit(visit, expected_status=VisitModel.UNDER_DOCTOR_REVIEW, actor=self.user)

        self.assertEqual(visit.status, VisitModel.COMPLETED)
        self.assertIsNotNone(visit.completed_at)
        self.assertEqual(
            list(visit.status_history.values_list('event', flat=True)),
            [workflow.OPEN_CONSULTATION_BILLING, workflow.CONSULTATION_PAID, workflow.ASSIGN_DOCTOR,
             workflow.START_REVIEW, workflow.COMPLETE]
        )
        self.assertEqual(visit.version, 5)

    def test_terminal_visit_rejects_events(self):
        visit = workflow.create_visit(self.patient)
        workflow.cancel_visit(visit, actor=self.user)

        self.assertEqual(visit.status, VisitModel.CANCELLED)
        with self.assertRaises(VisitTerminal):
            workflow.cancel_visit(visit)
        with self.assertRaises(VisitTerminal):
            workflow.start_review(visit)

    def test_payment_after_cancel_does_not_reopen(self):
        """Paying for a cancelled visit records the payment and leaves the visit cancelled"""
        visit = workflow.create_visit(self.patient)
        workflow.cancel_visit(visit)
        billing = consultation_billing(visit)

        pay_in_full(billing)

        billing.refresh_from_db()
        visit.refresh_from_db()
        self.assertIsNotNone(billing.settled_at)
        self.assertEqual(visit.status, VisitModel.CANCELLED)

    def test_stale_expected_status(self):
        """A caller acting on an outdated status is told the visit moved on"""
        visit = workflow.create_visit(self.patient)
        with self.assertRaises(ConcurrentModification) as ctx:
            workflow.cancel_visit(visit, expected_status=VisitModel.WAITING_FOR_TRIAGE)
        self.assertEqual(ctx.exception.context['current_status'], VisitModel.PENDING_PAYMENT)

    def test_event_from_wrong_status(self):
        visit = workflow.create_visit(self.patient)
        pay_in_full(consultation_billing(visit))
        visit.refresh_from_db()
        with self.assertRaises(InvalidTransition):
            workflow.start_review(visit)
        with self.assertRaises(InvalidTransition):
            workflow.transition(visit, 'teleport')

    def test_idempotent_transition(self):
        """Re-applying an event whose target is already reached changes nothing"""
        visit = workflow.create_visit(self.patient)
        pay_in_full(consultation_billing(visit))
        visit.refresh_from_db()
        version = visit.version

        status = workflow.transition(visit, workflow.CONSULTATION_PAID, idempotent=True)

        self.assertEqual(status, VisitModel.WAITING_FOR_TRIAGE)
        visit.refresh_from_db()
        self.assertEqual(visit.version, version)
        with self.assertRaises(InvalidTransition):
            workflow.transition(visit, workflow.CONSULTATION_PAID)

    def test_allowed_events(self):
        visit = workflow.create_visit(self.patient)
        self.assertEqual(sorted(workflow.allowed_events(visit)), [workflow.CANCEL, workflow.CONSULTATION_PAID])

    def test_no_doctor_available(self):
        ConsultantModel.objects.update(is_available=False)
        visit = workflow.create_visit(self.patient)
        pay_in_full(consultation_billing(visit))
        with self.assertRaises(NoDoctorAvailable):
            workflow.record_vitals_and_assign(visit)
        visit.refresh_from_db()
        self.assertEqual(visit.status, VisitModel.WAITING_FOR_TRIAGE)

    def test_partial_payment_blocks_every_advance(self):
        """A consultation paid 150 of 200 keeps the visit at payment and names the balance due"""
        self.catalog['CONSULT'].price = Decimal('200.00')
        self.catalog['CONSULT'].save()
        patient = create_patient(first_name='John', last_name='Smith', mobile='08030000009')
        visit = workflow.create_visit(patient, actor=self.user)
        billing = consultation_billing(visit)
        ledger.record_payment(billing, 'cash', '150', actor=self.user)

        advances = [
            lambda: workflow.record_vitals_and_assign(visit, {'temperature': '36.9'}, actor=self.user),
            lambda: workflow.start_review(visit, actor=self.user),
            lambda: orders.place_investigation_orders(visit, lab_services=[self.catalog['FBC']]),
        ]
        for advance in advances:
            with self.assertRaises(BillingNotSettled) as ctx:
                advance()
            self.assertEqual(ctx.exception.context['billing_id'], billing.pk)
            self.assertEqual(ctx.exception.context['outstanding_amount'], Decimal('50.00'))

        visit.refresh_from_db()
        self.assertEqual(visit.status, VisitModel.PENDING_PAYMENT)
        self.assertFalse(PatientVitalsModel.objects.filter(visit=visit).exists())

        ledger.record_payment(billing, 'cash', '50', actor=self.user)
        visit.refresh_from_db()
        self.assertEqual(visit.status, VisitModel.WAITING_FOR_TRIAGE)

    def test_version_race_is_retried(self):
        """An update landing between read and write is retried against the fresh row"""
        visit = workflow.create_visit(self.patient)
        version = visit.version
        attempts = []
        check_gate = workflow._check_gate

        def racing_check(current, rule):
            if not attempts:
                VisitModel.objects.filter(pk=current.pk).update(version=F('version') + 1)
            attempts.append(current.version)
            check_gate(current, rule)

        with mock.patch('consultation.workflow._check_gate', side_effect=racing_check), \
                mock.patch('consultation.workflow.time.sleep'):
            workflow.cancel_visit(visit, actor=self.user)

        self.assertEqual(attempts, [version, version + 1])
        self.assertEqual(visit.status, VisitModel.CANCELLED)
        self.assertEqual(visit.version, version + 2)
        self.assertEqual(visit.status_history.filter(event=workflow.CANCEL).count(), 1)

    def test_version_race_gives_up(self):
        """A visit that keeps changing fails after the configured attempts and stays put"""
        ConsultationSettingsModel.objects.create(transition_max_attempts=2)
        visit = workflow.create_visit(self.patient)
        attempts = []

        def always_racing(current, rule):
            VisitModel.objects.filter(pk=current.pk).update(version=F('version') + 1)
            attempts.append(current.version)

        with mock.patch('consultation.workflow._check_gate', side_effect=always_racing), \
                mock.patch('consultation.workflow.time.sleep'):
            with self.assertRaises(ConcurrentModification):
                workflow.cancel_visit(visit)

        self.assertEqual(len(attempts), 2)
        self.assertEqual(VisitModel.objects.get(pk=visit.pk).status, VisitModel.PENDING_PAYMENT)

    def test_vitals_bmi(self):
        visit = workflow.create_visit(self.patient)
        pay_in_full(consultation_billing(visit))
        vitals, doctor = workflow.record_vitals_and_assign(visit, {'height': '180', 'weight': '81'})
        self.assertEqual(str(vitals.bmi), '25.0')
        self.assertEqual(doctor, self.doctor)


class EmergencyVisitTest(TestCase):
    def setUp(self):
        self.user = create_user()
        self.catalog = create_catalog()
        self.doctor = create_consultant()
        self.patient = create_patient(activate=False)

    def test_emergency_skips_card_and_payment(self):
        """Emergency visits go straight to the least busy doctor with no payment gates"""
        visit = workflow.create_visit(self.patient, is_emergency=True, actor=self.user)

        self.assertEqual(visit.status, VisitModel.IN_DOCTOR_QUEUE)
        self.assertEqual(visit.consultant, self.doctor)
        self.assertEqual(visit.priority, 1)
        self.assertEqual(visit.queue_type, 'emergency')

        workflow.start_review(visit)
        placed = orders.place_investigation_orders(visit, lab_services=[self.catalog['FBC']])
        self.assertEqual(placed[0].status, LabTestOrderModel.QUEUED)

        billing = pending_emergency_billing(visit)
        self.assertEqual(placed[0].billing, billing)
        self.assertEqual(billing.total_amount, self.catalog['FBC'].price)
        self.assertFalse(BillingModel.objects.filter(visit=visit, billing_type=BillingModel.LAB).exists())

    def test_emergency_pharmacy_dispense_without_payment(self):
        visit = workflow.create_visit(self.patient, is_emergency=True)
        workflow.start_review(visit)
        orders.prescribe_medications(visit, [{'service': self.catalog['PCM'], 'quantity': 10}])

        self.assertEqual(orders.dispense_medications(visit), 1)
        self.assertEqual(visit.status, VisitModel.COMPLETED)
        self.assertEqual(pending_emergency_billing(visit).total_amount, self.catalog['PCM'].price * 10)

    def test_vitals_reassign_emergency_doctor(self):
        """Triage on an emergency visit can hand it to another doctor without leaving the queue"""
        visit = workflow.create_visit(self.patient, is_emergency=True)
        other = create_consultant(username='doctor2', first_name='Bola')

        workflow.record_vitals_and_assign(visit, {'pulse_rate': 120}, consultant=other)

        self.assertEqual(visit.status, VisitModel.IN_DOCTOR_QUEUE)
        self.assertEqual(visit.consultant, other)

    def test_reassignment_checks_expected_status(self):
        """Reassigning an emergency visit fails fast on a stale status and is recorded in the history"""
        visit = workflow.create_visit(self.patient, is_emergency=True)
        other = create_consultant(username='doctor2', first_name='Bola')

        with self.assertRaises(ConcurrentModification):
            workflow.record_vitals_and_assign(visit, consultant=other, expected_status=VisitModel.WAITING_FOR_TRIAGE)
        visit.refresh_from_db()
        self.assertEqual(visit.consultant, self.doctor)
        self.assertFalse(PatientVitalsModel.objects.filter(visit=visit).exists())

        workflow.record_vitals_and_assign(visit, consultant=other, expected_status=VisitModel.IN_DOCTOR_QUEUE,
                                          actor=self.user)
        entry = visit.status_history.last()
        self.assertEqual(entry.event, workflow.ASSIGN_DOCTOR)
        self.assertEqual(entry.from_status, VisitModel.IN_DOCTOR_QUEUE)
        self.assertEqual(entry.to_status, VisitModel.IN_DOCTOR_QUEUE)
        self.assertEqual(entry.changed_by, self.user)


class InvestigationOrderTest(TestCase):
    def setUp(self):
        self.user = create_user()
        self.catalog = create_catalog()
        self.doctor = create_consultant()
        self.patient = create_patient()
        self.visit = workflow.create_visit(self.patient)
        pay_in_full(consultation_billing(self.visit))
        self.visit.refresh_from_db()
        workflow.record_vitals_and_assign(self.visit)
        workflow.start_review(self.visit)

    def test_orders_require_review(self):
        workflow.complete_visit(self.visit)
        with self.assertRaises(VisitTerminal):
            orders.place_investigation_orders(self.visit, lab_services=[self.catalog['FBC']])

    def test_nothing_to_order(self):
        with self.assertRaises(WorkflowError):
            orders.place_investigation_orders(self.visit)

    def test_unpaid_order_cannot_start(self):
        """Lab work waits for the lab billing"""
        placed = orders.place_investigation_orders(self.visit, lab_services=[self.catalog['FBC']])
        self.assertEqual(self.visit.status, VisitModel.SENT_TO_LAB)
        self.assertEqual(placed[0].status, LabTestOrderModel.UNPAID)

        with self.assertRaises(BillingNotSettled):
            orders.accept_order(placed[0])

        pay_in_full(placed[0].billing)
        placed[0].refresh_from_db()
        self.assertEqual(placed[0].status, LabTestOrderModel.QUEUED)
        orders.accept_order(placed[0], actor=self.user)
        self.assertEqual(placed[0].status, LabTestOrderModel.IN_PROGRESS)

    def test_both_departments_merge_on_last_result(self):
        """With lab and radiology ordered, results review waits for whichever finishes last"""
        placed = orders.place_investigation_orders(
            self.visit, lab_services=[self.catalog['FBC']], radiology_services=[self.catalog['XRAY-CHEST']],
            expected_status=VisitModel.UNDER_DOCTOR_REVIEW
        )
        lab_order = next(o for o in placed if isinstance(o, LabTestOrderModel))
        scan_order = next(o for o in placed if isinstance(o, ScanOrderModel))
        self.assertEqual(self.visit.status, VisitModel.SENT_TO_BOTH)
        self.assertEqual(self.visit.outstanding_orders, 2)
        self.assertEqual(self.visit.results_progress, 0)
        self.assertNotEqual(lab_order.billing, scan_order.billing)

        pay_in_full(lab_order.billing)
        orders.accept_order(lab_order)
        orders.complete_order(lab_order, result_reference='results/fbc.pdf', actor=self.user)

        self.visit.refresh_from_db()
        self.assertEqual(self.visit.status, VisitModel.SENT_TO_BOTH)
        self.assertEqual(self.visit.results_progress, 50)
        with self.assertRaises(InvalidTransition):
            workflow.review_results(self.visit)

        pay_in_full(scan_order.billing)
        orders.accept_order(scan_order)
        orders.complete_order(scan_order, result_reference='results/xray.dcm')

        self.visit.refresh_from_db()
        self.assertEqual(self.visit.status, VisitModel.AWAITING_RESULTS_REVIEW)
        self.assertEqual(self.visit.results_progress, 100)

        workflow.review_results(self.visit)
        self.assertEqual(self.visit.status, VisitModel.UNDER_DOCTOR_REVIEW)

    def test_results_guard(self):
        """Results cannot be marked complete while orders are open"""
        orders.place_investigation_orders(self.visit, lab_services=[self.catalog['FBC'], self.catalog['MP']])
        with self.assertRaises(OrdersOutstanding):
            workflow.transition(self.visit, workflow.RESULTS_COMPLETE)

    def test_complete_requires_in_progress(self):
        placed = orders.place_investigation_orders(self.visit, radiology_services=[self.catalog['XRAY-CHEST']])
        with self.assertRaises(InvalidTransition):
            orders.complete_order(placed[0])

    def test_department_queue(self):
        placed = orders.place_investigation_orders(self.visit, lab_services=[self.catalog['FBC']])
        self.assertEqual(list(orders.department_queue(LabTestOrderModel)), [])
        pay_in_full(placed[0].billing)
        self.assertEqual(list(orders.department_queue(LabTestOrderModel)), [placed[0]])

    def test_prescription_needs_payment_to_dispense(self):
        drug_orders = orders.prescribe_medications(
            self.visit, [{'service': self.catalog['PCM'], 'quantity': 3, 'dosage_instructions': '1 tab tds'}]
        )
        self.assertEqual(self.visit.status, VisitModel.SENT_TO_PHARMACY)
        self.assertEqual(drug_orders[0].billing.total_amount, self.catalog['PCM'].price * 3)

        with self.assertRaises(BillingNotSettled):
            orders.dispense_medications(self.visit)

        pay_in_full(drug_orders[0].billing)
        drug_orders[0].refresh_from_db()
        self.assertEqual(drug_orders[0].status, DrugOrderModel.QUEUED)

        orders.dispense_medications(self.visit, actor=self.user)
        self.assertEqual(self.visit.status, VisitModel.COMPLETED)
        drug_orders[0].refresh_from_db()
        self.assertEqual(drug_orders[0].status, DrugOrderModel.DISPENSED)


class DoctorQueueTest(TestCase):
    def setUp(self):
        self.catalog = create_catalog()
        self.first = create_consultant(username='doc1')
        self.second = create_consultant(username='doc2', first_name='Bola')
        self.patient = create_patient()

    def _visit(self, doctor, status=VisitModel.WAITING_FOR_DOCTOR, **fields):
        visit = VisitModel.objects.create(patient=self.patient, **fields)
        VisitModel.objects.filter(pk=visit.pk).update(status=status, consultant=doctor)
        return visit

    def test_least_busy_doctor_recommended(self):
        self._visit(self.first)
        self.assertEqual(recommend_doctor(), self.second)

    def test_tie_goes_to_lowest_id(self):
        self._visit(self.first)
        self._visit(self.second)
        self.assertEqual(recommend_doctor(), self.first)

    def test_workload_counts_waiting_and_results(self):
        """Under-review and finished visits do not add to workload"""
        self._visit(self.first)
        self._visit(self.first, status=VisitModel.AWAITING_RESULTS_REVIEW)
        self._visit(self.first, status=VisitModel.UNDER_DOCTOR_REVIEW)
        self._visit(self.first, status=VisitModel.COMPLETED)
        self.assertEqual(workload(self.first), 2)
        self.assertEqual(workloads(), {self.first.pk: 2})

    def test_recommendation_with_mixed_workloads(self):
        """Workloads of 3, 1, 4 and 1 go to the first of the two least busy doctors"""
        third = create_consultant(username='doc3', first_name='Chidi')
        fourth = create_consultant(username='doc4', first_name='Dayo')
        for doctor, load in ((self.first, 3), (self.second, 1), (third, 4), (fourth, 1)):
            for _ in range(load):
                self._visit(doctor)

        self.assertEqual(workloads(), {self.first.pk: 3, self.second.pk: 1, third.pk: 4, fourth.pk: 1})
        self.assertEqual(recommend_doctor(), self.second)

    def test_unavailable_doctor_skipped(self):
        self._visit(self.second)
        self._visit(self.second)
        self.first.is_available = False
        self.first.save()
        self.assertEqual(recommend_doctor(), self.second)

        ConsultantModel.objects.update(is_available=False)
        self.assertIsNone(recommend_doctor())

    def test_queue_order(self):
        """Emergencies first, then priority with unset last, then arrival"""
        normal = self._visit(self.first, priority=3)
        unset = self._visit(self.first, priority=None)
        urgent = self._visit(self.first, priority=1)
        emergency = self._visit(self.first, status=VisitModel.IN_DOCTOR_QUEUE, is_emergency=True, priority=3)
        priority = self._visit(self.first, priority=2)
        self._visit(self.first, status=VisitModel.CANCELLED)

        self.assertEqual(list(queue_for(self.first)), [emergency, urgent, priority, normal, unset])

    def test_queue_status_totals(self):
        self._visit(self.first)
        self._visit(self.first, status=VisitModel.UNDER_DOCTOR_REVIEW)
        self._visit(self.second, status=VisitModel.AWAITING_RESULTS_REVIEW)
        self._visit(self.second)
        self._visit(self.second)

        status = doctors_queue_status()

        self.assertEqual([row['id'] for row in status['doctors']], [self.first.pk, self.second.pk])
        self.assertEqual(status['totals']['new_patients'], 3)
        self.assertEqual(status['totals']['in_review'], 1)
        self.assertEqual(status['totals']['awaiting_results'], 1)
        self.assertEqual(status['totals']['workload'], 4)
        self.assertEqual(status['average_workload'], 2.0)
        self.assertEqual(status['recommended_doctor_id'], self.first.pk)


class ConsultationViewTest(TestCase):
    def setUp(self):
        self.user = create_user(permissions=[
            'consultation.add_visitmodel', 'consultation.change_visitmodel', 'consultation.add_patientvitalsmodel',
        ])
        self.client.force_login(self.user)
        self.catalog = create_catalog()
        self.doctor = create_consultant()

    def test_create_visit_requires_active_card(self):
        patient = create_patient(activate=False)
        response = self.client.post(reverse('create_visit_ajax'), {'patient': patient.pk})
        self.assertEqual(response.status_code, 403)
        data = json.loads(response.content)
        self.assertEqual(data['code'], 'card_inactive_or_expired')
        self.assertEqual(data['card_status'], 'inactive')

    def test_create_and_cancel_visit(self):
        patient = create_patient()
        response = self.client.post(reverse('create_visit_ajax'), {'patient': patient.pk, 'priority': '2'})
        self.assertEqual(response.status_code, 201)
        visit = json.loads(response.content)['visit']
        self.assertEqual(visit['status'], VisitModel.PENDING_PAYMENT)
        self.assertEqual(visit['priority'], 2)
        self.assertEqual(visit['billings'][0]['billing_type'], 'consultation')

        stale = self.client.post(reverse('cancel_visit_ajax', args=[visit['id']]),
                                 json.dumps({'expected_status': VisitModel.WAITING_FOR_TRIAGE}),
                                 content_type='application/json')
        self.assertEqual(stale.status_code, 409)
        self.assertEqual(json.loads(stale.content)['code'], 'concurrent_modification')

        response = self.client.post(reverse('cancel_visit_ajax', args=[visit['id']]))
        self.assertEqual(json.loads(response.content)['visit']['status'], VisitModel.CANCELLED)

    def test_unpaid_visit_gate_is_402(self):
        patient = create_patient()
        visit = workflow.create_visit(patient)
        VisitModel.objects.filter(pk=visit.pk).update(status=VisitModel.WAITING_FOR_TRIAGE)

        response = self.client.post(reverse('record_vitals_ajax', args=[visit.pk]), {'temperature': '37.2'})
        self.assertEqual(response.status_code, 402)
        data = json.loads(response.content)
        self.assertEqual(data['code'], 'billing_not_settled')
        self.assertEqual(data['outstanding_amount'], '5000.00')

    def test_partial_consultation_payment_is_402(self):
        """Nurse and doctor are both told which billing is still owed"""
        self.catalog['CONSULT'].price = Decimal('200.00')
        self.catalog['CONSULT'].save()
        patient = create_patient(first_name='John', last_name='Smith')
        visit = workflow.create_visit(patient)
        billing = consultation_billing(visit)
        ledger.record_payment(billing, 'cash', '150')

        for url in (reverse('record_vitals_ajax', args=[visit.pk]), reverse('start_review_ajax', args=[visit.pk])):
            response = self.client.post(url, {'temperature': '37.2'})
            self.assertEqual(response.status_code, 402)
            data = json.loads(response.content)
            self.assertEqual(data['code'], 'billing_not_settled')
            self.assertEqual(data['billing_id'], billing.pk)
            self.assertEqual(data['outstanding_amount'], '50.00')

    def test_vitals_validation(self):
        patient = create_patient()
        visit = workflow.create_visit(patient)
        response = self.client.post(reverse('record_vitals_ajax', args=[visit.pk]), {'temperature': '60'})
        self.assertEqual(response.status_code, 400)
        self.assertIn('temperature', json.loads(response.content)['errors'])

    def test_order_investigations_ajax(self):
        patient = create_patient()
        visit = workflow.create_visit(patient, is_emergency=True)
        workflow.start_review(visit)

        response = self.client.post(
            reverse('order_investigations_ajax', args=[visit.pk]),
            json.dumps({'lab_service_ids': [self.catalog['FBC'].pk],
                        'radiology_service_ids': [self.catalog['XRAY-CHEST'].pk]}),
            content_type='application/json'
        )
        self.assertEqual(response.status_code, 201)
        data = json.loads(response.content)
        self.assertEqual(sorted(o['department'] for o in data['orders']), ['laboratory', 'scan'])
        self.assertEqual(data['visit']['status'], VisitModel.SENT_TO_BOTH)

    def test_order_rejects_wrong_category(self):
        patient = create_patient()
        visit = workflow.create_visit(patient, is_emergency=True)
        workflow.start_review(visit)
        response = self.client.post(reverse('order_investigations_ajax', args=[visit.pk]),
                                    {'lab_service_ids': [self.catalog['PCM'].pk]})
        self.assertEqual(response.status_code, 400)

    def test_prescribe_ajax_validates_quantity(self):
        patient = create_patient()
        visit = workflow.create_visit(patient, is_emergency=True)
        workflow.start_review(visit)
        url = reverse('prescribe_ajax', args=[visit.pk])

        for quantity in ('two', 0):
            response = self.client.post(url, json.dumps({
                'items': [{'service_id': self.catalog['PCM'].pk, 'quantity': quantity}]
            }), content_type='application/json')
            self.assertEqual(response.status_code, 400)
        self.assertFalse(DrugOrderModel.objects.filter(visit=visit).exists())

        response = self.client.post(url, json.dumps({
            'items': [{'service_id': self.catalog['PCM'].pk, 'quantity': '3', 'dosage_instructions': '1 tab tds'}]
        }), content_type='application/json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(DrugOrderModel.objects.get(visit=visit).quantity, 3)

    def test_doctors_queue_status_ajax(self):
        response = self.client.get(reverse('doctors_queue_status_ajax'))
        data = json.loads(response.content)
        self.assertTrue(data['success'])
        self.assertEqual(data['recommended_doctor_id'], self.doctor.pk)
        self.assertEqual(data['refresh_seconds'], 30)

    def test_my_queue_needs_consultant(self):
        response = self.client.get(reverse('my_doctor_queue_ajax'))
        self.assertEqual(response.status_code, 403)

        self.client.force_login(self.doctor.user)
        response = self.client.get(reverse('my_doctor_queue_ajax'))
        self.assertEqual(json.loads(response.content)['consultant']['name'], 'Dr. Ada Obi')
