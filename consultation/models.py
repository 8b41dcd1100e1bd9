from datetime import date
from decimal import Decimal

from django.contrib.auth.models import User
from django.db import models

from admin_site.model_info import PRIORITY, QUEUE_TYPE, INVESTIGATION_ORDER_STATUS
from admin_site.utils import save_with_sequence_number


class ConsultantModel(models.Model):
    """Doctors who can take consultations"""
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='consultant_profile')
    specialization = models.CharField(max_length=100, blank=True, default='General Practice')
    is_available = models.BooleanField(default=True)
    consultation_fee = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True,
                                           help_text="Overrides the catalog consultation price when set")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['id']

    def __str__(self):
        full_name = self.user.get_full_name().strip() or self.user.username
        return f"Dr. {full_name}"


class VisitModel(models.Model):
    """One patient visit, moved through its workflow by consultation.workflow"""
    REGISTERED = 'registered'
    PENDING_PAYMENT = 'pending_payment'
    WAITING_FOR_TRIAGE = 'waiting_for_triage'
    WAITING_FOR_DOCTOR = 'waiting_for_doctor'
    IN_DOCTOR_QUEUE = 'in_doctor_queue'
    UNDER_DOCTOR_REVIEW = 'under_doctor_review'
    SENT_TO_LAB = 'sent_to_lab'
    SENT_TO_RADIOLOGY = 'sent_to_radiology'
    SENT_TO_BOTH = 'sent_to_both'
    AWAITING_RESULTS_REVIEW = 'awaiting_results_review'
    SENT_TO_PHARMACY = 'sent_to_pharmacy'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'

    VISIT_STATUS = [
        (REGISTERED, 'Registered'),
        (PENDING_PAYMENT, 'Pending Payment'),
        (WAITING_FOR_TRIAGE, 'Waiting for Triage'),
        (WAITING_FOR_DOCTOR, 'Waiting for Doctor'),
        (IN_DOCTOR_QUEUE, 'In Doctor Queue'),
        (UNDER_DOCTOR_REVIEW, 'Under Doctor Review'),
        (SENT_TO_LAB, 'Sent to Laboratory'),
        (SENT_TO_RADIOLOGY, 'Sent to Radiology'),
        (SENT_TO_BOTH, 'Sent to Laboratory and Radiology'),
        (AWAITING_RESULTS_REVIEW, 'Awaiting Results Review'),
        (SENT_TO_PHARMACY, 'Sent to Pharmacy'),
        (COMPLETED, 'Completed'),
        (CANCELLED, 'Cancelled'),
    ]

    TERMINAL_STATES = (COMPLETED, CANCELLED)
    # counted as a doctor's workload
    NEW_PATIENT_STATES = (WAITING_FOR_DOCTOR, IN_DOCTOR_QUEUE)
    RESULTS_STATES = (AWAITING_RESULTS_REVIEW,)
    INVESTIGATION_STATES = (SENT_TO_LAB, SENT_TO_RADIOLOGY, SENT_TO_BOTH)

    visit_uid = models.CharField(max_length=30, unique=True, blank=True, null=True)
    patient = models.ForeignKey('patient.PatientModel', on_delete=models.PROTECT, related_name='visits')
    status = models.CharField(max_length=30, choices=VISIT_STATUS, default=REGISTERED)
    version = models.PositiveIntegerField(default=0)

    is_emergency = models.BooleanField(default=False)
    queue_type = models.CharField(max_length=20, choices=QUEUE_TYPE, default='consultation')
    priority = models.PositiveSmallIntegerField(choices=PRIORITY, null=True, blank=True)

    consultant = models.ForeignKey(ConsultantModel, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='visits')
    suggested_consultant = models.ForeignKey(ConsultantModel, on_delete=models.SET_NULL, null=True, blank=True,
                                             related_name='suggested_visits')

    # lab/radiology orders not yet completed, and all placed
    outstanding_orders = models.PositiveIntegerField(default=0)
    total_orders = models.PositiveIntegerField(default=0)

    chief_complaint = models.TextField(blank=True, default='')
    notes = models.TextField(blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)
    status_changed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='visit_created_by')

    class Meta:
        ordering = ['-id']
        indexes = [
            models.Index(fields=['consultant', 'status']),
            models.Index(fields=['status']),
        ]

    def __str__(self):
        return f"{self.visit_uid}: {self.patient} ({self.get_status_display()})"

    def save(self, *args, **kwargs):
        # Visit UID: VISIT-20261017-0001
        prefix = f"VISIT-{date.today().strftime('%Y%m%d')}-"
        save_with_sequence_number(self, 'visit_uid', prefix, 4,
                                  lambda: super(VisitModel, self).save(*args, **kwargs))

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATES

    @property
    def results_progress(self):
        """Percentage of lab/radiology orders completed, or None when nothing was ordered."""
        if not self.total_orders:
            return None
        done = self.total_orders - self.outstanding_orders
        return round(done * 100 / self.total_orders)


class VisitStatusHistoryModel(models.Model):
    visit = models.ForeignKey(VisitModel, on_delete=models.CASCADE, related_name='status_history')
    from_status = models.CharField(max_length=30, choices=VisitModel.VISIT_STATUS)
    to_status = models.CharField(max_length=30, choices=VisitModel.VISIT_STATUS)
    event = models.CharField(max_length=40)
    changed_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='visit_status_changes')
    changed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.visit.visit_uid}: {self.from_status} -> {self.to_status}"


class PatientVitalsModel(models.Model):
    """Patient vitals taken by nurses before consultation"""
    visit = models.ForeignKey(VisitModel, on_delete=models.CASCADE, related_name='vitals')

    # Basic vitals
    temperature = models.DecimalField(max_digits=4, decimal_places=1, null=True, blank=True, help_text="°C")
    blood_pressure_systolic = models.IntegerField(null=True, blank=True)
    blood_pressure_diastolic = models.IntegerField(null=True, blank=True)
    pulse_rate = models.IntegerField(null=True, blank=True, help_text="BPM")
    respiratory_rate = models.IntegerField(null=True, blank=True, help_text="per minute")
    oxygen_saturation = models.IntegerField(null=True, blank=True, help_text="SpO2 %")

    # Physical measurements
    height = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True, help_text="cm")
    weight = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True, help_text="kg")
    bmi = models.DecimalField(max_digits=4, decimal_places=1, null=True, blank=True)

    chief_complaint = models.TextField(blank=True, help_text="What patient is complaining of")
    notes = models.TextField(blank=True)

    recorded_at = models.DateTimeField(auto_now_add=True)
    recorded_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                    related_name='recorded_vitals')

    class Meta:
        ordering = ['-id']

    def __str__(self):
        return f"Vitals: {self.visit.patient} - {self.visit.visit_uid}"

    def save(self, *args, **kwargs):
        # Calculate BMI if height and weight are provided
        if self.height and self.weight:
            height_m = Decimal(str(self.height)) / 100  # Convert cm to meters
            self.bmi = round(Decimal(str(self.weight)) / (height_m * height_m), 1)

        super().save(*args, **kwargs)

    @property
    def blood_pressure(self):
        """Return formatted blood pressure"""
        if self.blood_pressure_systolic and self.blood_pressure_diastolic:
            return f"{self.blood_pressure_systolic}/{self.blood_pressure_diastolic}"
        return None


class ConsultationSettingsModel(models.Model):
    """Global consultation settings"""
    consultation_service_code = models.CharField(max_length=30, default='CONSULT')
    queue_refresh_seconds = models.PositiveIntegerField(default=30, help_text="Dashboard polling interval")
    transition_max_attempts = models.PositiveIntegerField(default=3,
                                                          help_text="Retries when a visit changes mid-update")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return "Consultation Settings"


def get_consultation_setting():
    return ConsultationSettingsModel.objects.first() or ConsultationSettingsModel()


class InvestigationOrderModel(models.Model):
    """Common fields of laboratory and radiology orders"""
    UNPAID = 'unpaid'
    QUEUED = 'queued'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'

    ORDER_PREFIX = 'ORD'

    order_number = models.CharField(max_length=30, unique=True, blank=True, null=True)
    visit = models.ForeignKey(VisitModel, on_delete=models.CASCADE, related_name='%(app_label)s_orders')
    patient = models.ForeignKey('patient.PatientModel', on_delete=models.PROTECT, related_name='%(app_label)s_orders')
    service = models.ForeignKey('service.Service', on_delete=models.PROTECT, related_name='%(app_label)s_orders')
    billing = models.ForeignKey('finance.BillingModel', on_delete=models.PROTECT, related_name='%(app_label)s_orders')
    status = models.CharField(max_length=20, choices=INVESTIGATION_ORDER_STATUS, default=UNPAID)
    special_instructions = models.TextField(blank=True, default='')

    ordered_at = models.DateTimeField(auto_now_add=True)
    ordered_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    queued_at = models.DateTimeField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    started_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    completed_at = models.DateTimeField(null=True, blank=True)
    completed_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')

    # stored by reference; the file itself lives in external storage
    result_reference = models.CharField(max_length=500, blank=True, default='')
    result_notes = models.TextField(blank=True, default='')

    class Meta:
        abstract = True
        ordering = ['-id']

    def __str__(self):
        return f"{self.order_number} - {self.service.name} ({self.get_status_display()})"

    def save(self, *args, **kwargs):
        # Order number: LAB202610170001
        prefix = f"{self.ORDER_PREFIX}{date.today().strftime('%Y%m%d')}"
        save_with_sequence_number(self, 'order_number', prefix, 4,
                                  lambda: super(InvestigationOrderModel, self).save(*args, **kwargs))
