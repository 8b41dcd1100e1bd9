from django.contrib.auth.models import User
from django.db import models
from django.utils import timezone

from admin_site.model_info import *
from admin_site.utils import save_with_sequence_number


class PatientSettingModel(models.Model):
    """Clinic-wide patient card settings; one row, edited through the admin"""
    card_validity_days = models.PositiveIntegerField(default=30)
    card_registration_service_code = models.CharField(max_length=30, default='CARD-REG')
    card_activation_service_code = models.CharField(max_length=30, default='CARD-ACT')
    patient_id_prefix = models.CharField(max_length=10, default='PT')
    created_at = models.DateTimeField(auto_now_add=True, blank=True, null=True)
    updated_at = models.DateTimeField(auto_now=True, blank=True, null=True)
    updated_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='patient_setting_updated_by')

    def __str__(self):
        return f"Patient Settings (card valid {self.card_validity_days} days)"


def get_patient_setting():
    """The saved settings row, or unsaved defaults when none has been created."""
    return PatientSettingModel.objects.first() or PatientSettingModel()


class PatientModel(models.Model):
    """This model handles patient"""
    CARD_INACTIVE = 'inactive'
    CARD_ACTIVE = 'active'
    CARD_EXPIRED = 'expired'

    first_name = models.CharField(max_length=50)
    middle_name = models.CharField(max_length=50, null=True, blank=True, default='')
    last_name = models.CharField(max_length=50)
    card_number = models.CharField(max_length=50, unique=True, blank=True, null=True, db_index=True)
    date_of_birth = models.DateField(null=True, blank=True)
    gender = models.CharField(max_length=10, choices=GENDER)
    address = models.CharField(max_length=250, null=True, blank=True, default='')
    mobile = models.CharField(max_length=20, null=True, blank=True, default='', db_index=True)
    email = models.EmailField(max_length=100, null=True, blank=True, default='')

    # card lifecycle; changed only through patient.card
    card_status = models.CharField(max_length=10, choices=CARD_STATUS, default=CARD_INACTIVE)
    card_expiry_date = models.DateTimeField(null=True, blank=True)
    card_activated_at = models.DateTimeField(null=True, blank=True)

    registration_date = models.DateField(auto_now_add=True, blank=True, null=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='patient_created_by')
    created_at = models.DateTimeField(auto_now_add=True, blank=True, null=True)
    updated_at = models.DateTimeField(auto_now=True, blank=True, null=True)

    class Meta:
        ordering = ['-id']

    def __str__(self):
        if self.middle_name:
            return "{} {} {}".format(self.first_name, self.middle_name, self.last_name)
        else:
            return "{} {}".format(self.first_name, self.last_name)

    def save(self, *args, **kwargs):
        if not self.first_name or not self.last_name:
            from django.core.exceptions import ValidationError
            raise ValidationError("First name and last name are required")

        # Card number: PT000001
        prefix = get_patient_setting().patient_id_prefix.upper()
        save_with_sequence_number(self, 'card_number', prefix, 6,
                                  lambda: super(PatientModel, self).save(*args, **kwargs))

    @property
    def card_has_elapsed(self):
        return bool(self.card_expiry_date and self.card_expiry_date <= timezone.now())


class CardActivationModel(models.Model):
    """History of card activations, one row per settled card billing"""
    patient = models.ForeignKey(PatientModel, on_delete=models.CASCADE, related_name='card_activations')
    billing = models.ForeignKey('finance.BillingModel', on_delete=models.SET_NULL, null=True, blank=True,
                                related_name='card_activations')
    activated_at = models.DateTimeField()
    expires_at = models.DateTimeField()
    activated_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                     related_name='card_activations')
    notes = models.TextField(blank=True, default='')

    class Meta:
        ordering = ['-activated_at']

    def __str__(self):
        return f"{self.patient} card active until {self.expires_at:%Y-%m-%d}"


class PreRegistrationModel(models.Model):
    """Call-ahead waiting list entry, served by priority then arrival"""
    PENDING = 'pending'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'

    full_name = models.CharField(max_length=200)
    phone = models.CharField(max_length=20)
    priority = models.PositiveSmallIntegerField(choices=PRIORITY, default=3)
    patient = models.ForeignKey(PatientModel, on_delete=models.SET_NULL, null=True, blank=True,
                                related_name='pre_registrations')
    status = models.CharField(max_length=15, choices=PRE_REGISTRATION_STATUS, default=PENDING)
    notes = models.TextField(blank=True, default='')
    visit = models.ForeignKey('consultation.VisitModel', on_delete=models.SET_NULL, null=True, blank=True,
                              related_name='pre_registrations')

    created_at = models.DateTimeField(auto_now_add=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='pre_registration_created_by')
    processed_at = models.DateTimeField(null=True, blank=True)
    processed_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                     related_name='pre_registration_processed_by')
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                     related_name='pre_registration_cancelled_by')

    class Meta:
        ordering = ['priority', 'created_at', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['phone'], condition=models.Q(status='pending'),
                name='unique_pending_preregistration_phone'
            ),
            models.UniqueConstraint(
                fields=['patient'], condition=models.Q(status='pending'),
                name='unique_pending_preregistration_patient'
            ),
        ]

    def __str__(self):
        return f"{self.full_name} ({self.get_priority_display()}) - {self.status.upper()}"
