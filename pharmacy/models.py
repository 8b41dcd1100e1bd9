from datetime import date

from django.contrib.auth.models import User
from django.db import models

from admin_site.model_info import DRUG_ORDER_STATUS
from admin_site.utils import save_with_sequence_number


class DrugOrderModel(models.Model):
    """Medication prescribed during a visit, dispensed once its pharmacy billing is paid"""
    UNPAID = 'unpaid'
    QUEUED = 'queued'
    DISPENSED = 'dispensed'
    CANCELLED = 'cancelled'

    order_number = models.CharField(max_length=30, unique=True, blank=True, null=True)
    visit = models.ForeignKey('consultation.VisitModel', on_delete=models.CASCADE, related_name='drug_orders')
    patient = models.ForeignKey('patient.PatientModel', on_delete=models.PROTECT, related_name='drug_orders')
    service = models.ForeignKey('service.Service', on_delete=models.PROTECT, related_name='drug_orders')
    billing = models.ForeignKey('finance.BillingModel', on_delete=models.PROTECT, related_name='drug_orders')
    quantity = models.PositiveIntegerField(default=1)
    dosage_instructions = models.CharField(max_length=255, blank=True, default='')
    status = models.CharField(max_length=20, choices=DRUG_ORDER_STATUS, default=UNPAID)

    ordered_at = models.DateTimeField(auto_now_add=True)
    ordered_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='drug_orders_prescribed')
    queued_at = models.DateTimeField(null=True, blank=True)
    dispensed_at = models.DateTimeField(null=True, blank=True)
    dispensed_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                     related_name='drug_orders_dispensed')

    class Meta:
        ordering = ['-id']

    def __str__(self):
        return f"{self.order_number} - {self.service.name} x{self.quantity}"

    def save(self, *args, **kwargs):
        # Order number: DRG202610170001
        prefix = f"DRG{date.today().strftime('%Y%m%d')}"
        save_with_sequence_number(self, 'order_number', prefix, 4,
                                  lambda: super(DrugOrderModel, self).save(*args, **kwargs))
