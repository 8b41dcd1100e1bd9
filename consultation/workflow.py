"""
Visit workflow state machine.

Each department action is an event with a fixed set of source statuses and
one target status. Some events are gated on a settled billing of a given
type; emergency visits waive every billing gate and are settled once, at
the end, through the emergency ledger.

Transitions are applied with a compare-and-set on (status, version): the
update only lands if the row still holds what was read at the start of the
attempt. A miss is retried against the fresh row a bounded number of
times; a caller that passed ``expected_status`` is told immediately when
the visit has moved on instead.
"""
import logging
import random
import time
from collections import namedtuple

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from admin_site.exceptions import (
    BillingNotSettled, ConcurrentModification, InvalidTransition, NoDoctorAvailable, OrdersOutstanding,
    VisitTerminal
)
from consultation.models import VisitModel, VisitStatusHistoryModel, PatientVitalsModel, get_consultation_setting
from consultation.queue import recommend_doctor
from consultation.signals import visit_status_changed
from finance import ledger
from finance.emergency import get_or_create_emergency_billing
from finance.models import BillingModel
from patient.card import require_active_card
from service.models import get_service_by_code

logger = logging.getLogger(__name__)

OPEN_CONSULTATION_BILLING = 'open_consultation_billing'
ADMIT_EMERGENCY = 'admit_emergency'
CONSULTATION_PAID = 'consultation_paid'
ASSIGN_DOCTOR = 'assign_doctor'
START_REVIEW = 'start_review'
ORDER_LAB = 'order_lab'
ORDER_RADIOLOGY = 'order_radiology'
ORDER_BOTH = 'order_both'
RESULTS_COMPLETE = 'results_complete'
REVIEW_RESULTS = 'review_results'
ORDER_PHARMACY = 'order_pharmacy'
DISPENSE = 'dispense'
COMPLETE = 'complete'
ACKNOWLEDGE_EMERGENCY = 'acknowledge_emergency'
CANCEL = 'cancel'

Rule = namedtuple('Rule', ['sources', 'target', 'gate', 'guard'])


def _no_outstanding_orders(visit):
    if visit.outstanding_orders > 0:
        raise OrdersOutstanding(
            visit_id=visit.pk,
            outstanding_orders=visit.outstanding_orders,
            results_progress=visit.results_progress,
        )


def _emergency_only(visit):
    if not visit.is_emergency:
        raise InvalidTransition(
            "Only emergency visits are closed by acknowledging their billing.",
            visit_id=visit.pk, event=ACKNOWLEDGE_EMERGENCY, current_status=visit.status
        )


NON_TERMINAL_STATES = tuple(s for s, _ in VisitModel.VISIT_STATUS if s not in VisitModel.TERMINAL_STATES)

TRANSITIONS = {
    OPEN_CONSULTATION_BILLING: Rule((VisitModel.REGISTERED,), VisitModel.PENDING_PAYMENT, None, None),
    ADMIT_EMERGENCY: Rule((VisitModel.REGISTERED,), VisitModel.IN_DOCTOR_QUEUE, None, None),
    CONSULTATION_PAID: Rule((VisitModel.PENDING_PAYMENT,), VisitModel.WAITING_FOR_TRIAGE,
                            BillingModel.CONSULTATION, None),
    ASSIGN_DOCTOR: Rule((VisitModel.WAITING_FOR_TRIAGE,), VisitModel.WAITING_FOR_DOCTOR,
                        BillingModel.CONSULTATION, None),
    START_REVIEW: Rule((VisitModel.WAITING_FOR_DOCTOR, VisitModel.IN_DOCTOR_QUEUE),
                       VisitModel.UNDER_DOCTOR_REVIEW, None, None),
    ORDER_LAB: Rule((VisitModel.UNDER_DOCTOR_REVIEW,), VisitModel.SENT_TO_LAB, None, None),
    ORDER_RADIOLOGY: Rule((VisitModel.UNDER_DOCTOR_REVIEW,), VisitModel.SENT_TO_RADIOLOGY, None, None),
    ORDER_BOTH: Rule((VisitModel.UNDER_DOCTOR_REVIEW,), VisitModel.SENT_TO_BOTH, None, None),
    RESULTS_COMPLETE: Rule(VisitModel.INVESTIGATION_STATES, VisitModel.AWAITING_RESULTS_REVIEW,
                           None, _no_outstanding_orders),
    REVIEW_RESULTS: Rule((VisitModel.AWAITING_RESULTS_REVIEW,), VisitModel.UNDER_DOCTOR_REVIEW,
                         None, _no_outstanding_orders),
    ORDER_PHARMACY: Rule((VisitModel.UNDER_DOCTOR_REVIEW,), VisitModel.SENT_TO_PHARMACY, None, None),
    DISPENSE: Rule((VisitModel.SENT_TO_PHARMACY,), VisitModel.COMPLETED, BillingModel.PHARMACY, None),
    COMPLETE: Rule((VisitModel.UNDER_DOCTOR_REVIEW,), VisitModel.COMPLETED, None, None),
    ACKNOWLEDGE_EMERGENCY: Rule(NON_TERMINAL_STATES, VisitModel.COMPLETED, None, _emergency_only),
    CANCEL: Rule(NON_TERMINAL_STATES, VisitModel.CANCELLED, None, None),
}


def allowed_events(visit):
    """Events whose source statuses include the visit's current status (gates not evaluated)."""
    return [
        event for event, rule in TRANSITIONS.items()
        if visit.status in rule.sources and (event != ACKNOWLEDGE_EMERGENCY or visit.is_emergency)
    ]


def _check_gate(visit, rule):
    if rule.gate is None or visit.is_emergency:
        return
    billing, missing = ledger.first_unsettled_billing(visit, rule.gate)
    if missing:
        raise BillingNotSettled(
            f"No {rule.gate} billing has been opened for this visit.",
            visit_id=visit.pk, billing_type=rule.gate
        )
    if billing is not None:
        raise BillingNotSettled(
            f"{billing.get_billing_type_display().title()} billing {billing.billing_number} "
            f"has an outstanding balance of ₦{ledger.outstanding_amount(billing)}.",
            visit_id=visit.pk,
            billing_id=billing.pk,
            billing_number=billing.billing_number,
            billing_type=billing.billing_type,
            outstanding_amount=ledger.outstanding_amount(billing),
        )


def require_consultation_paid(visit):
    """A visit still waiting on its consultation billing cannot move forward."""
    if visit.status == VisitModel.PENDING_PAYMENT:
        _check_gate(visit, TRANSITIONS[CONSULTATION_PAID])


def transition(visit, event, expected_status=None, actor=None, changes=None, idempotent=False):
    """
    Apply ``event`` to ``visit`` and return the new status.

    ``changes`` are extra field values written in the same update.
    With ``idempotent`` a visit already in the target status is left alone.
    """
    rule = TRANSITIONS.get(event)
    if rule is None:
        raise InvalidTransition(f"Unknown visit event '{event}'.", event=event)

    max_attempts = max(1, get_consultation_setting().transition_max_attempts)
    for attempt in range(1, max_attempts + 1):
        current = VisitModel.objects.get(pk=visit.pk)

        if idempotent and current.status == rule.target:
            visit.refresh_from_db()
            return current.status

        if expected_status is not None and current.status != expected_status:
            raise ConcurrentModification(
                visit_id=current.pk, expected_status=expected_status, current_status=current.status
            )

        if current.is_terminal:
            raise VisitTerminal(visit_id=current.pk, current_status=current.status)

        if current.status not in rule.sources:
            require_consultation_paid(current)
            raise InvalidTransition(
                f"Cannot {event.replace('_', ' ')} while the visit is {current.get_status_display().lower()}.",
                visit_id=current.pk, event=event, current_status=current.status
            )

        _check_gate(current, rule)
        if rule.guard is not None:
            rule.guard(current)

        stamp = timezone.now()
        values = {'status': rule.target, 'version': F('version') + 1, 'status_changed_at': stamp}
        if rule.target == VisitModel.COMPLETED:
            values['completed_at'] = stamp
        values.update(changes or {})

        with transaction.atomic():
            updated = VisitModel.objects.filter(
                pk=current.pk, status=current.status, version=current.version
            ).update(**values)
            if updated:
                VisitStatusHistoryModel.objects.create(
                    visit=current, from_status=current.status, to_status=rule.target,
                    event=event, changed_by=actor
                )
                visit.refresh_from_db()
                logger.info(f"Visit {visit.visit_uid}: {current.status} -> {rule.target} ({event})")
                visit_status_changed.send(
                    sender=VisitModel, visit=visit, from_status=current.status,
                    to_status=rule.target, event=event, actor=actor
                )
                return rule.target

        logger.info(f"Visit {current.visit_uid} changed during {event} (attempt {attempt}/{max_attempts})")
        if attempt < max_attempts:
            time.sleep(0.01 + random.uniform(0, 0.02))

    raise ConcurrentModification(visit_id=visit.pk, event=event)


def create_visit(patient, is_emergency=False, queue_type='consultation', priority=None, consultant=None,
                 chief_complaint='', actor=None):
    """
    Register a visit. A regular visit needs an active card and waits on its
    consultation billing; an emergency visit goes straight to the doctor's
    queue with an emergency billing accruing charges.
    """
    if not is_emergency:
        require_active_card(patient)

    with transaction.atomic():
        visit = VisitModel.objects.create(
            patient=patient,
            is_emergency=is_emergency,
            queue_type='emergency' if is_emergency else queue_type,
            priority=1 if is_emergency and priority is None else priority,
            suggested_consultant=consultant,
            chief_complaint=chief_complaint or '',
            created_by=actor,
        )

        if is_emergency:
            get_or_create_emergency_billing(visit, actor)
            doctor = consultant or recommend_doctor()
            transition(visit, ADMIT_EMERGENCY, actor=actor,
                       changes={'consultant': doctor} if doctor else None)
        else:
            service = get_service_by_code(get_consultation_setting().consultation_service_code)
            price = consultant.consultation_fee if consultant and consultant.consultation_fee is not None else None
            billing = ledger.open_billing(patient, BillingModel.CONSULTATION, visit=visit,
                                          services=[(service, 1, price)], actor=actor)
            transition(visit, OPEN_CONSULTATION_BILLING, actor=actor)
            # a free consultation is paid as soon as it is billed
            ledger.settle_if_covered(billing, actor)

    visit.refresh_from_db()
    logger.info(f"Created {'emergency ' if is_emergency else ''}visit {visit.visit_uid} for patient {patient.pk}")
    return visit


def record_vitals_and_assign(visit, vitals=None, consultant=None, expected_status=None, actor=None):
    """
    Store triage vitals and hand the visit to a doctor: the one chosen, or
    the least busy available doctor. Emergency visits already in the
    doctor queue are reassigned without changing status.
    """
    vitals = dict(vitals or {})
    with transaction.atomic():
        record = PatientVitalsModel.objects.create(visit=visit, recorded_by=actor, **vitals)

        doctor = consultant or recommend_doctor()
        if doctor is None:
            raise NoDoctorAvailable(visit_id=visit.pk)

        changes = {'consultant': doctor}
        if vitals.get('chief_complaint'):
            changes['chief_complaint'] = vitals['chief_complaint']

        current = VisitModel.objects.get(pk=visit.pk)
        if current.is_emergency and current.status == VisitModel.IN_DOCTOR_QUEUE:
            if expected_status is not None and current.status != expected_status:
                raise ConcurrentModification(
                    visit_id=current.pk, expected_status=expected_status, current_status=current.status
                )
            updated = VisitModel.objects.filter(
                pk=current.pk, status=current.status, version=current.version
            ).update(version=F('version') + 1, **changes)
            if not updated:
                raise ConcurrentModification(visit_id=current.pk, current_status=current.status)
            VisitStatusHistoryModel.objects.create(
                visit=current, from_status=current.status, to_status=current.status,
                event=ASSIGN_DOCTOR, changed_by=actor
            )
            visit.refresh_from_db()
        else:
            transition(visit, ASSIGN_DOCTOR, expected_status=expected_status, actor=actor, changes=changes)

    logger.info(f"Visit {visit.visit_uid} assigned to {doctor}")
    return record, doctor


def start_review(visit, consultant=None, expected_status=None, actor=None):
    changes = {'consultant': consultant} if consultant is not None and visit.consultant_id is None else None
    return transition(visit, START_REVIEW, expected_status=expected_status, actor=actor, changes=changes)


def review_results(visit, expected_status=None, actor=None):
    return transition(visit, REVIEW_RESULTS, expected_status=expected_status, actor=actor)


def complete_visit(visit, expected_status=None, actor=None):
    return transition(visit, COMPLETE, expected_status=expected_status, actor=actor)


def cancel_visit(visit, expected_status=None, actor=None):
    return transition(visit, CANCEL, expected_status=expected_status, actor=actor)
