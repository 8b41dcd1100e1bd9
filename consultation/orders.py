"""
Orders a doctor places during review: laboratory tests, radiology studies
and prescriptions.

Each department's orders are charged on a billing of that department's
type and stay UNPAID until the billing settles, when they are released to
the department queue. Lab and radiology orders count into the visit's
``outstanding_orders``; the visit moves on to results review only when the
last one completes, whichever department finishes last.
"""
import logging

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from admin_site.exceptions import (
    BillingNotSettled, ConcurrentModification, InvalidTransition, VisitTerminal, WorkflowError
)
from consultation.models import VisitModel
from consultation.workflow import (
    transition, require_consultation_paid, ORDER_LAB, ORDER_RADIOLOGY, ORDER_BOTH, ORDER_PHARMACY, DISPENSE,
    RESULTS_COMPLETE
)
from finance import ledger
from finance.emergency import get_or_create_emergency_billing, add_emergency_service
from finance.models import BillingModel
from laboratory.models import LabTestOrderModel
from pharmacy.models import DrugOrderModel
from scan.models import ScanOrderModel

logger = logging.getLogger(__name__)


def _lock_reviewable_visit(visit, expected_status=None):
    current = VisitModel.objects.select_for_update().get(pk=visit.pk)
    if expected_status is not None and current.status != expected_status:
        raise ConcurrentModification(
            visit_id=current.pk, expected_status=expected_status, current_status=current.status
        )
    if current.is_terminal:
        raise VisitTerminal(visit_id=current.pk, current_status=current.status)
    if current.status != VisitModel.UNDER_DOCTOR_REVIEW:
        require_consultation_paid(current)
        raise InvalidTransition(
            'Orders can only be placed while the doctor is reviewing the patient.',
            visit_id=current.pk, current_status=current.status
        )
    return current


def _charge(visit, billing_type, items, actor):
    """Bill ``items`` for the visit: on the emergency running bill, or on a new department billing."""
    if visit.is_emergency:
        billing = get_or_create_emergency_billing(visit, actor)
        for service, quantity in items:
            add_emergency_service(billing, service, quantity=quantity, actor=actor)
        return billing
    return ledger.open_billing(visit.patient, billing_type, visit=visit, services=items, actor=actor)


def place_investigation_orders(visit, lab_services=(), radiology_services=(), special_instructions='',
                               expected_status=None, actor=None):
    lab_services = list(lab_services)
    radiology_services = list(radiology_services)
    if not lab_services and not radiology_services:
        raise WorkflowError('Select at least one laboratory test or radiology study.')

    if lab_services and radiology_services:
        event = ORDER_BOTH
    elif lab_services:
        event = ORDER_LAB
    else:
        event = ORDER_RADIOLOGY

    orders = []
    billings = []
    with transaction.atomic():
        current = _lock_reviewable_visit(visit, expected_status)
        stamp = timezone.now()
        initial_status = LabTestOrderModel.QUEUED if current.is_emergency else LabTestOrderModel.UNPAID

        for services, billing_type, model in (
                (lab_services, BillingModel.LAB, LabTestOrderModel),
                (radiology_services, BillingModel.RADIOLOGY, ScanOrderModel)):
            if not services:
                continue
            billing = _charge(current, billing_type, [(s, 1) for s in services], actor)
            billings.append(billing)
            for service in services:
                orders.append(model.objects.create(
                    visit=current,
                    patient=current.patient,
                    service=service,
                    billing=billing,
                    status=initial_status,
                    queued_at=stamp if initial_status == model.QUEUED else None,
                    special_instructions=special_instructions or '',
                    ordered_by=actor,
                ))

        count = len(orders)
        transition(current, event, expected_status=expected_status, actor=actor, changes={
            'outstanding_orders': F('outstanding_orders') + count,
            'total_orders': F('total_orders') + count,
        })

        if not current.is_emergency:
            for billing in billings:
                ledger.settle_if_covered(billing, actor)

    visit.refresh_from_db()
    logger.info(f"Visit {visit.visit_uid}: {count} investigation order(s) placed ({event})")
    return orders


def release_orders_for_billing(model, billing):
    """Move the UNPAID orders charged on a settled billing into the department queue."""
    released = model.objects.filter(billing=billing, status=model.UNPAID).update(
        status=model.QUEUED, queued_at=timezone.now()
    )
    if released:
        logger.info(f"Released {released} {model._meta.verbose_name} record(s) for billing {billing.billing_number}")
    return released


def accept_order(order, actor=None):
    """A department starts work on an order; its billing must be settled first."""
    model = type(order)
    with transaction.atomic():
        locked = model.objects.select_for_update().select_related('visit', 'billing').get(pk=order.pk)
        if locked.visit.is_terminal:
            raise VisitTerminal(visit_id=locked.visit_id, current_status=locked.visit.status)

        if locked.status == model.UNPAID:
            if not locked.visit.is_emergency and not ledger.is_settled(locked.billing):
                raise BillingNotSettled(
                    f"Billing {locked.billing.billing_number} must be paid before this order is processed.",
                    order_id=locked.pk,
                    billing_id=locked.billing_id,
                    billing_number=locked.billing.billing_number,
                    outstanding_amount=ledger.outstanding_amount(locked.billing),
                )
            locked.queued_at = timezone.now()
        elif locked.status != model.QUEUED:
            raise InvalidTransition(
                f"Order {locked.order_number} is {locked.get_status_display().lower()} and cannot be started.",
                order_id=locked.pk, current_status=locked.status
            )

        locked.status = model.IN_PROGRESS
        locked.started_at = timezone.now()
        locked.started_by = actor
        locked.save(update_fields=['status', 'queued_at', 'started_at', 'started_by'])

    order.refresh_from_db()
    return order


def complete_order(order, result_reference='', notes='', actor=None):
    """
    Record an order's result. When it is the visit's last open order the
    visit moves to results review; racing departments both attempt it and
    the second finds the move already made.
    """
    model = type(order)
    with transaction.atomic():
        locked = model.objects.select_for_update().get(pk=order.pk)
        if locked.status != model.IN_PROGRESS:
            raise InvalidTransition(
                f"Order {locked.order_number} must be in progress to record results.",
                order_id=locked.pk, current_status=locked.status
            )

        locked.status = model.COMPLETED
        locked.completed_at = timezone.now()
        locked.completed_by = actor
        locked.result_reference = result_reference or ''
        locked.result_notes = notes or ''
        locked.save(update_fields=['status', 'completed_at', 'completed_by', 'result_reference', 'result_notes'])

        VisitModel.objects.filter(pk=locked.visit_id, outstanding_orders__gt=0).update(
            outstanding_orders=F('outstanding_orders') - 1
        )
        visit = VisitModel.objects.get(pk=locked.visit_id)
        if visit.outstanding_orders == 0 and visit.status in VisitModel.INVESTIGATION_STATES:
            transition(visit, RESULTS_COMPLETE, actor=actor, idempotent=True)

    order.refresh_from_db()
    return order


def department_queue(model):
    """Orders a department can work on: emergencies first, then oldest released first."""
    return (
        model.objects
        .filter(status__in=[model.QUEUED, model.IN_PROGRESS])
        .select_related('visit', 'patient', 'service')
        .order_by('-visit__is_emergency', 'queued_at', 'id')
    )


def prescribe_medications(visit, items, expected_status=None, actor=None):
    """
    ``items`` is a list of dicts with ``service``, ``quantity`` and
    optional ``dosage_instructions``.
    """
    items = list(items)
    if not items:
        raise WorkflowError('Add at least one medication to the prescription.')

    with transaction.atomic():
        current = _lock_reviewable_visit(visit, expected_status)
        billing = _charge(current, BillingModel.PHARMACY,
                          [(item['service'], int(item.get('quantity') or 1)) for item in items], actor)
        stamp = timezone.now()
        initial_status = DrugOrderModel.QUEUED if current.is_emergency else DrugOrderModel.UNPAID

        orders = [
            DrugOrderModel.objects.create(
                visit=current,
                patient=current.patient,
                service=item['service'],
                billing=billing,
                quantity=int(item.get('quantity') or 1),
                dosage_instructions=item.get('dosage_instructions') or '',
                status=initial_status,
                queued_at=stamp if initial_status == DrugOrderModel.QUEUED else None,
                ordered_by=actor,
            )
            for item in items
        ]
        transition(current, ORDER_PHARMACY, expected_status=expected_status, actor=actor)

        if not current.is_emergency:
            ledger.settle_if_covered(billing, actor)

    visit.refresh_from_db()
    return orders


def dispense_medications(visit, expected_status=None, actor=None):
    """Hand over the prescription and complete the visit; the pharmacy billing must be settled."""
    with transaction.atomic():
        transition(visit, DISPENSE, expected_status=expected_status, actor=actor)
        dispensed = DrugOrderModel.objects.filter(
            visit=visit, status__in=[DrugOrderModel.UNPAID, DrugOrderModel.QUEUED]
        ).update(status=DrugOrderModel.DISPENSED, dispensed_at=timezone.now(), dispensed_by=actor)

    logger.info(f"Visit {visit.visit_uid}: {dispensed} medication(s) dispensed")
    return dispensed
