"""
Patient card lifecycle.

    INACTIVE --(card billing settled)--> ACTIVE --(validity elapsed)--> EXPIRED
    EXPIRED  --(card billing settled)--> ACTIVE

A card is activated only by the settlement of a card billing; expiry is
applied lazily whenever the card is read and by the expire_patient_cards
management command.
"""
import logging
from datetime import timedelta

from django.db import transaction
from django.utils import timezone

from admin_site.exceptions import CardInactiveOrExpired
from finance import ledger
from finance.models import BillingModel
from patient.models import PatientModel, CardActivationModel, get_patient_setting
from service.models import get_service_by_code

logger = logging.getLogger(__name__)


def refresh_card_status(patient):
    """Flip an ACTIVE card whose validity has elapsed to EXPIRED and return the current status."""
    if patient.card_status == PatientModel.CARD_ACTIVE and patient.card_has_elapsed:
        PatientModel.objects.filter(
            pk=patient.pk, card_status=PatientModel.CARD_ACTIVE, card_expiry_date__lte=timezone.now()
        ).update(card_status=PatientModel.CARD_EXPIRED, updated_at=timezone.now())
        patient.refresh_from_db(fields=['card_status', 'card_expiry_date', 'card_activated_at'])
        if patient.card_status == PatientModel.CARD_EXPIRED:
            logger.info(f"Card {patient.card_number} expired")
    return patient.card_status


def can_create_visit(patient):
    return refresh_card_status(patient) == PatientModel.CARD_ACTIVE


def require_active_card(patient):
    if not can_create_visit(patient):
        raise CardInactiveOrExpired(
            patient_id=patient.pk,
            card_status=patient.card_status,
            card_expiry_date=patient.card_expiry_date.isoformat() if patient.card_expiry_date else None,
        )


def pending_card_billing(patient):
    return BillingModel.objects.filter(
        patient=patient, billing_type=BillingModel.CARD, settled_at__isnull=True
    ).order_by('id').first()


def _open_card_billing(patient, service_code, notes, actor):
    service = get_service_by_code(service_code)
    billing = ledger.open_billing(patient, BillingModel.CARD, services=[service], actor=actor, notes=notes)
    # a free card settles immediately
    ledger.settle_if_covered(billing, actor)
    return billing


@transaction.atomic
def register_patient(data, actor=None):
    """Create a patient with an INACTIVE card and open the card registration billing."""
    patient = PatientModel(created_by=actor, **data)
    patient.save()
    setting = get_patient_setting()
    billing = _open_card_billing(patient, setting.card_registration_service_code, 'Card registration', actor)
    patient.refresh_from_db()
    logger.info(f"Registered patient {patient.card_number} with card billing {billing.billing_number}")
    return patient, billing


def request_activation(patient, actor=None):
    """
    Ask for a card (re)activation. An active card is left alone, an unpaid
    card billing is handed back instead of charging twice, and otherwise a
    fixed-price activation billing is opened.
    """
    with transaction.atomic():
        locked = PatientModel.objects.select_for_update().get(pk=patient.pk)
        if refresh_card_status(locked) == PatientModel.CARD_ACTIVE:
            result = {'action': 'already_active', 'billing': None, 'card_expiry_date': locked.card_expiry_date}
        else:
            billing = pending_card_billing(locked)
            if billing is not None:
                result = {'action': 'pending_billing', 'billing': billing, 'card_expiry_date': None}
            else:
                setting = get_patient_setting()
                billing = _open_card_billing(locked, setting.card_activation_service_code, 'Card activation', actor)
                result = {'action': 'billing_opened', 'billing': billing, 'card_expiry_date': None}

    patient.refresh_from_db()
    if result['billing'] is not None:
        result['billing'].refresh_from_db()
    return result


def activate_from_billing(billing, actor=None):
    """Activate the patient's card for a settled card billing; returns the activation or None."""
    if billing.billing_type != BillingModel.CARD:
        return None

    from patient.signals import card_activated

    with transaction.atomic():
        patient = PatientModel.objects.select_for_update().get(pk=billing.patient_id)
        if refresh_card_status(patient) == PatientModel.CARD_ACTIVE:
            logger.info(f"Card {patient.card_number} already active; billing {billing.billing_number} ignored")
            return None

        stamp = timezone.now()
        validity = get_patient_setting().card_validity_days
        patient.card_status = PatientModel.CARD_ACTIVE
        patient.card_activated_at = stamp
        patient.card_expiry_date = stamp + timedelta(days=validity)
        patient.save(update_fields=['card_status', 'card_activated_at', 'card_expiry_date', 'updated_at'])

        activation = CardActivationModel.objects.create(
            patient=patient,
            billing=billing,
            activated_at=stamp,
            expires_at=patient.card_expiry_date,
            activated_by=actor,
            notes=f"Activated by payment of billing {billing.billing_number}",
        )
        card_activated.send(sender=PatientModel, patient=patient, activation=activation, actor=actor)

    logger.info(f"Card {patient.card_number} active until {patient.card_expiry_date:%Y-%m-%d}")
    return activation


def expire_cards():
    """Mark every elapsed ACTIVE card EXPIRED; returns the number of cards changed."""
    stamp = timezone.now()
    count = PatientModel.objects.filter(
        card_status=PatientModel.CARD_ACTIVE, card_expiry_date__lte=stamp
    ).update(card_status=PatientModel.CARD_EXPIRED, updated_at=stamp)
    if count:
        logger.info(f"Expired {count} patient card(s)")
    return count
