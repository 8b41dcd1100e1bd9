import json

from django.test import TestCase
from django.urls import reverse

from clinic_hms.testing import create_catalog, create_consultant, create_patient, create_user, pay_in_full
from consultation import orders, workflow
from consultation.models import VisitModel
from pharmacy.models import DrugOrderModel


class PharmacyViewTest(TestCase):
    def setUp(self):
        self.user = create_user(username='pharmacist', permissions=[
            'pharmacy.view_drugordermodel', 'pharmacy.change_drugordermodel',
        ])
        self.client.force_login(self.user)
        self.catalog = create_catalog()
        create_consultant()

        self.visit = workflow.create_visit(create_patient())
        pay_in_full(self.visit.billings.get())
        workflow.record_vitals_and_assign(self.visit)
        workflow.start_review(self.visit)
        self.drug_orders = orders.prescribe_medications(self.visit, [
            {'service': self.catalog['PCM'], 'quantity': 6, 'dosage_instructions': '2 tabs bd'},
        ])

    def test_dispense_unpaid_is_402(self):
        response = self.client.post(reverse('dispense_ajax', args=[self.visit.pk]))
        self.assertEqual(response.status_code, 402)
        self.visit.refresh_from_db()
        self.assertEqual(self.visit.status, VisitModel.SENT_TO_PHARMACY)

    def test_queue_and_dispense(self):
        """Paid prescriptions are listed per visit and dispensing completes the visit"""
        pay_in_full(self.drug_orders[0].billing)

        response = self.client.get(reverse('pharmacy_queue_ajax'))
        visits = json.loads(response.content)['visits']
        self.assertEqual(visits[0]['visit_id'], self.visit.pk)
        self.assertEqual(visits[0]['orders'][0]['quantity'], 6)

        response = self.client.post(reverse('dispense_ajax', args=[self.visit.pk]),
                                    {'expected_status': VisitModel.SENT_TO_PHARMACY})
        data = json.loads(response.content)
        self.assertEqual(data['dispensed'], 1)
        self.assertEqual(data['visit_status'], VisitModel.COMPLETED)
        self.assertFalse(DrugOrderModel.objects.exclude(status=DrugOrderModel.DISPENSED).exists())
