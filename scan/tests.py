import json

from django.test import TestCase
from django.urls import reverse

from clinic_hms.testing import create_catalog, create_consultant, create_patient, create_user
from consultation import orders, workflow
from consultation.models import VisitModel
from scan.models import ScanOrderModel


class ScanOrderViewTest(TestCase):
    def setUp(self):
        self.user = create_user(username='radiographer', permissions=[
            'scan.view_scanordermodel', 'scan.change_scanordermodel',
        ])
        self.client.force_login(self.user)
        self.catalog = create_catalog()
        create_consultant()
        patient = create_patient(activate=False)

        # emergency orders skip the payment wait
        self.visit = workflow.create_visit(patient, is_emergency=True)
        workflow.start_review(self.visit)
        self.lab_order, self.scan_order = orders.place_investigation_orders(
            self.visit, lab_services=[self.catalog['MP']], radiology_services=[self.catalog['XRAY-CHEST']]
        )

    def test_emergency_order_queued_immediately(self):
        self.assertTrue(self.scan_order.order_number.startswith('SCN'))
        response = self.client.get(reverse('scan_queue_ajax'))
        queued = json.loads(response.content)['orders']
        self.assertEqual([o['id'] for o in queued], [self.scan_order.pk])
        self.assertTrue(queued[0]['visit']['is_emergency'])

    def test_radiology_first_keeps_visit_waiting(self):
        """Finishing radiology before the lab leaves the visit with the departments"""
        self.client.post(reverse('scan_order_accept_ajax', args=[self.scan_order.pk]))
        response = self.client.post(reverse('scan_order_complete_ajax', args=[self.scan_order.pk]),
                                    {'result_reference': 'pacs://study/77'})
        data = json.loads(response.content)
        self.assertEqual(data['order']['status'], ScanOrderModel.COMPLETED)
        self.assertEqual(data['visit_status'], VisitModel.SENT_TO_BOTH)

        orders.accept_order(self.lab_order)
        orders.complete_order(self.lab_order)
        self.visit.refresh_from_db()
        self.assertEqual(self.visit.status, VisitModel.AWAITING_RESULTS_REVIEW)
