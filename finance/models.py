from datetime import date

from django.contrib.auth.models import User
from django.db import models

from admin_site.model_info import BILLING_TYPE, BILLING_STATUS, PAYMENT_METHOD
from admin_site.utils import save_with_sequence_number


class InsuranceProviderModel(models.Model):
    STATUS_CHOICES = [('active', 'ACTIVE'), ('inactive', 'INACTIVE')]

    name = models.CharField(max_length=100)
    code = models.CharField(max_length=20, unique=True)
    description = models.TextField(blank=True, null=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active')
    created_at = models.DateTimeField(auto_now_add=True, blank=True, null=True)
    updated_at = models.DateTimeField(auto_now=True, blank=True, null=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name.upper()

    def save(self, *args, **kwargs):
        self.code = (self.code or '').strip().upper()
        super().save(*args, **kwargs)


class BillingModel(models.Model):
    """
    A charge sheet for one patient: ordered service line items and the
    payments made against them. Card billings have no visit.
    """
    CARD = 'card'
    CONSULTATION = 'consultation'
    LAB = 'lab'
    RADIOLOGY = 'radiology'
    PHARMACY = 'pharmacy'
    EMERGENCY = 'emergency'
    OTHER = 'other'

    PENDING = 'pending'
    PARTIALLY_PAID = 'partially_paid'
    PAID = 'paid'
    EMERGENCY_PENDING = 'emergency_pending'

    billing_number = models.CharField(max_length=30, unique=True, blank=True, null=True)
    patient = models.ForeignKey('patient.PatientModel', on_delete=models.PROTECT, related_name='billings')
    visit = models.ForeignKey('consultation.VisitModel', on_delete=models.PROTECT, related_name='billings',
                              null=True, blank=True)
    billing_type = models.CharField(max_length=20, choices=BILLING_TYPE)
    status = models.CharField(max_length=20, choices=BILLING_STATUS, default=PENDING)

    # cached sums, recomputed by finance.ledger on every write
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    settled_at = models.DateTimeField(null=True, blank=True)

    # emergency billings only
    frozen_total = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    acknowledged_at = models.DateTimeField(null=True, blank=True)
    acknowledged_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                        related_name='billing_acknowledged_by')
    acknowledgement_notes = models.TextField(blank=True, default='')

    notes = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='billing_created_by')

    class Meta:
        ordering = ['-id']
        indexes = [
            models.Index(fields=['visit', 'billing_type']),
            models.Index(fields=['patient', 'billing_type', 'status']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['visit'],
                condition=models.Q(billing_type='emergency', status='emergency_pending'),
                name='unique_pending_emergency_billing_per_visit'
            ),
        ]

    def __str__(self):
        return f"{self.billing_number} - {self.patient} ({self.get_billing_type_display()})"

    def save(self, *args, **kwargs):
        # Billing number: BIL202610170001
        prefix = f"BIL{date.today().strftime('%Y%m%d')}"
        save_with_sequence_number(self, 'billing_number', prefix, 4,
                                  lambda: super(BillingModel, self).save(*args, **kwargs))

    @property
    def is_emergency(self):
        return self.billing_type == self.EMERGENCY

    @property
    def is_locked(self):
        """Line items can no longer change once a settlement has been recorded."""
        return self.settled_at is not None


class BillingServiceModel(models.Model):
    billing = models.ForeignKey(BillingModel, on_delete=models.CASCADE, related_name='services')
    service = models.ForeignKey('service.Service', on_delete=models.PROTECT, related_name='billing_lines')
    description = models.CharField(max_length=200, blank=True, default='')
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField(default=1)
    line_total = models.DecimalField(max_digits=12, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='billing_service_created_by')

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.description or self.service.name} x{self.quantity}"

    def save(self, *args, **kwargs):
        if not self.description:
            self.description = self.service.name
        self.line_total = self.unit_price * self.quantity
        super().save(*args, **kwargs)


class BillPaymentModel(models.Model):
    billing = models.ForeignKey(BillingModel, on_delete=models.CASCADE, related_name='payments')
    method = models.CharField(max_length=20, choices=PAYMENT_METHOD)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    bank_name = models.CharField(max_length=100, blank=True, default='')
    trans_number = models.CharField(max_length=100, blank=True, default='')
    insurance = models.ForeignKey(InsuranceProviderModel, on_delete=models.PROTECT, null=True, blank=True,
                                  related_name='payments')
    notes = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    received_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                    related_name='bill_payment_received_by')

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.billing.billing_number} - {self.get_method_display()} ₦{self.amount}"
