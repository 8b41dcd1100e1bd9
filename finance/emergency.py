"""
Emergency billing: services accrue on a running total while the patient is
treated, with no payment precondition, and the whole amount is settled by a
single acknowledgment at the end.
"""
import logging

from django.db import transaction
from django.utils import timezone

from admin_site.exceptions import AlreadyAcknowledged, UnsupportedBillingOperation
from finance import ledger
from finance.models import BillingModel
from finance.signals import billing_settled

logger = logging.getLogger(__name__)


def _require_emergency(billing):
    if not billing.is_emergency:
        raise UnsupportedBillingOperation('This is not an emergency billing.', billing_id=billing.id)


def pending_emergency_billing(visit):
    return BillingModel.objects.filter(
        visit=visit, billing_type=BillingModel.EMERGENCY, status=BillingModel.EMERGENCY_PENDING
    ).first()


def get_or_create_emergency_billing(visit, actor=None):
    billing = pending_emergency_billing(visit)
    if billing is not None:
        return billing
    return ledger.open_billing(visit.patient, BillingModel.EMERGENCY, visit=visit, actor=actor,
                               notes='Emergency running bill')


def add_emergency_service(billing, service, quantity=1, unit_price=None, actor=None):
    _require_emergency(billing)
    return ledger.add_service(billing, service, quantity=quantity, unit_price=unit_price, actor=actor)


def remove_emergency_service(billing, billing_service_id, actor=None):
    _require_emergency(billing)
    return ledger.remove_service(billing, billing_service_id, actor=actor)


def acknowledge_payment(billing, notes='', actor=None):
    """Freeze the running total and mark the emergency billing paid. Acknowledging twice is an error."""
    _require_emergency(billing)

    with transaction.atomic():
        locked = BillingModel.objects.select_for_update().get(pk=billing.pk)
        if locked.acknowledged_at is not None or locked.status != BillingModel.EMERGENCY_PENDING:
            raise AlreadyAcknowledged(
                billing_id=locked.id,
                acknowledged_at=locked.acknowledged_at.isoformat() if locked.acknowledged_at else None
            )

        stamp = timezone.now()
        locked.frozen_total = ledger.billing_total(locked)
        locked.total_amount = locked.frozen_total
        locked.status = BillingModel.PAID
        locked.acknowledged_at = stamp
        locked.acknowledged_by = actor
        locked.acknowledgement_notes = notes or ''
        locked.settled_at = stamp
        locked.save()

        logger.info(f"Emergency billing {locked.billing_number} acknowledged at {locked.frozen_total}")
        billing_settled.send(sender=BillingModel, billing=locked, actor=actor)

    billing.refresh_from_db()
    return billing
