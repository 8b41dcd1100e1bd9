import logging

from django.dispatch import receiver, Signal
from django.utils.html import escape

from admin_site.exceptions import VisitTerminal, InvalidTransition
from admin_site.utils import log_activity
from consultation.models import VisitModel
from finance.models import BillingModel
from finance.signals import billing_settled

logger = logging.getLogger(__name__)

# Sent after every successful visit transition.
# kwargs: visit, from_status, to_status, event, actor
visit_status_changed = Signal()


@receiver(billing_settled)
def advance_visit_on_consultation_payment(sender, billing, actor=None, **kwargs):
    if billing.billing_type != BillingModel.CONSULTATION or billing.visit_id is None:
        return

    from consultation.workflow import transition, CONSULTATION_PAID

    visit = VisitModel.objects.get(pk=billing.visit_id)
    try:
        transition(visit, CONSULTATION_PAID, actor=actor, idempotent=True)
    except (VisitTerminal, InvalidTransition) as e:
        # payment stands; the visit has moved on or was cancelled
        logger.warning(f"Consultation billing {billing.billing_number} settled but visit "
                       f"{visit.visit_uid} not advanced: {e.message}")


@receiver(billing_settled)
def complete_visit_on_emergency_acknowledgment(sender, billing, actor=None, **kwargs):
    if not billing.is_emergency or billing.visit_id is None:
        return

    from consultation.workflow import transition, ACKNOWLEDGE_EMERGENCY

    visit = VisitModel.objects.get(pk=billing.visit_id)
    if visit.status == VisitModel.CANCELLED:
        logger.warning(f"Emergency billing {billing.billing_number} acknowledged for cancelled visit "
                       f"{visit.visit_uid}")
        return
    transition(visit, ACKNOWLEDGE_EMERGENCY, actor=actor, idempotent=True)


@receiver(visit_status_changed)
def log_visit_status_change(sender, visit, from_status, to_status, event, actor=None, **kwargs):
    colour = 'bg-danger text-white' if to_status == VisitModel.CANCELLED else 'bg-primary text-white'
    labels = dict(VisitModel.VISIT_STATUS)
    log_activity(
        actor, colour,
        f"moved visit <b>{escape(visit.visit_uid)}</b> ({escape(str(visit.patient))}) "
        f"from {labels.get(from_status, from_status)} to <b>{labels.get(to_status, to_status)}</b>",
        category='consultation', sub_category='visit', keywords=f'visit__{event}'
    )
