import logging

from django.db.models.signals import post_save
from django.dispatch import receiver, Signal
from django.utils.html import escape

from admin_site.utils import log_activity
from finance.models import BillingModel
from finance.signals import billing_settled
from patient.models import PatientModel, PreRegistrationModel, PatientSettingModel

logger = logging.getLogger(__name__)

# Sent when a settled card billing activates a card.
# kwargs: patient, activation, actor
card_activated = Signal()


@receiver(billing_settled)
def activate_card_on_payment(sender, billing, actor=None, **kwargs):
    if billing.billing_type != BillingModel.CARD:
        return
    from patient.card import activate_from_billing
    activate_from_billing(billing, actor=actor)


@receiver(card_activated)
def log_card_activation(sender, patient, activation, actor=None, **kwargs):
    log_activity(
        actor, 'bg-success text-white',
        f"activated card <b>{escape(patient.card_number)}</b> for {escape(str(patient))} "
        f"until {activation.expires_at:%Y-%m-%d}",
        category='patient', sub_category='card', keywords='card__activate'
    )


@receiver(post_save, sender=PatientModel)
def log_patient_create(sender, instance, created, **kwargs):
    if created:
        log_activity(
            instance.created_by, 'bg-success text-white',
            f"registered a new <b>Patient</b>: {escape(str(instance))} ({escape(instance.card_number)})",
            category='patient', sub_category='patient', keywords='patient__create'
        )


@receiver(post_save, sender=PreRegistrationModel)
def log_pre_registration_create(sender, instance, created, **kwargs):
    if created:
        log_activity(
            instance.created_by, 'bg-secondary text-white',
            f"added <b>{escape(instance.full_name)}</b> ({escape(instance.phone)}) to the pre-registration queue "
            f"as {instance.get_priority_display()}",
            category='patient', sub_category='pre_registration', keywords='pre_registration__create'
        )


# --- Track changes on update ---
@receiver(post_save, sender=PatientSettingModel)
def log_patient_setting_change(sender, instance, created, **kwargs):
    log_activity(
        instance.updated_by, 'bg-warning text-dark',
        f"{'created' if created else 'updated'} <b>Patient Settings</b>: card valid for "
        f"{instance.card_validity_days} days, registration code {escape(instance.card_registration_service_code)}, "
        f"activation code {escape(instance.card_activation_service_code)}",
        category='patient', sub_category='setting', keywords='patient_setting__update'
    )
