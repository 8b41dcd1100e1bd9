import json

from django.test import TestCase
from django.urls import reverse

from admin_site.models import ActivityLogModel
from clinic_hms.testing import create_catalog, create_consultant, create_patient, create_user, pay_in_full
from consultation import orders, workflow
from consultation.models import VisitModel
from laboratory.models import LabTestOrderModel


class LabOrderViewTest(TestCase):
    def setUp(self):
        self.user = create_user(username='labtech', permissions=[
            'laboratory.view_labtestordermodel', 'laboratory.change_labtestordermodel',
        ])
        self.client.force_login(self.user)
        self.catalog = create_catalog()
        create_consultant()
        self.patient = create_patient()

        self.visit = workflow.create_visit(self.patient)
        pay_in_full(self.visit.billings.get())
        workflow.record_vitals_and_assign(self.visit)
        workflow.start_review(self.visit)
        self.order = orders.place_investigation_orders(self.visit, lab_services=[self.catalog['FBC']])[0]

    def test_order_number_format(self):
        self.assertTrue(self.order.order_number.startswith('LAB'))
        self.assertEqual(len(self.order.order_number), len('LAB') + 8 + 4)

    def test_accept_unpaid_order_is_402(self):
        """Lab cannot start on an order whose billing is unpaid"""
        response = self.client.post(reverse('lab_order_accept_ajax', args=[self.order.pk]))
        self.assertEqual(response.status_code, 402)
        data = json.loads(response.content)
        self.assertEqual(data['code'], 'billing_not_settled')
        self.assertEqual(data['billing_number'], self.order.billing.billing_number)

    def test_queue_lists_paid_orders(self):
        response = self.client.get(reverse('lab_queue_ajax'))
        self.assertEqual(json.loads(response.content)['orders'], [])

        pay_in_full(self.order.billing)
        response = self.client.get(reverse('lab_queue_ajax'))
        queued = json.loads(response.content)['orders']
        self.assertEqual([o['id'] for o in queued], [self.order.pk])
        self.assertEqual(queued[0]['status'], LabTestOrderModel.QUEUED)

    def test_accept_and_complete(self):
        """Completing the only lab order sends the visit to results review"""
        pay_in_full(self.order.billing)

        response = self.client.post(reverse('lab_order_accept_ajax', args=[self.order.pk]))
        self.assertEqual(json.loads(response.content)['order']['status'], LabTestOrderModel.IN_PROGRESS)

        response = self.client.post(
            reverse('lab_order_complete_ajax', args=[self.order.pk]),
            json.dumps({'result_reference': 'results/fbc-001.pdf', 'notes': 'Normal'}),
            content_type='application/json'
        )
        data = json.loads(response.content)
        self.assertTrue(data['success'])
        self.assertEqual(data['order']['result_reference'], 'results/fbc-001.pdf')
        self.assertEqual(data['visit_status'], VisitModel.AWAITING_RESULTS_REVIEW)
        self.assertTrue(ActivityLogModel.objects.filter(keywords='lab_order__complete').exists())

    def test_complete_twice_conflicts(self):
        pay_in_full(self.order.billing)
        orders.accept_order(self.order)
        orders.complete_order(self.order)

        response = self.client.post(reverse('lab_order_complete_ajax', args=[self.order.pk]))
        self.assertEqual(response.status_code, 409)
        self.assertEqual(json.loads(response.content)['code'], 'invalid_transition')

    def test_requires_permission(self):
        self.client.force_login(create_user(username='porter'))
        response = self.client.get(reverse('lab_queue_ajax'))
        self.assertEqual(response.status_code, 403)
