"""
Call-ahead pre-registration queue.

Entries are served by priority (1 urgent, 2 priority, 3 normal), then by
arrival. A phone number or patient may hold at most one PENDING entry.
"""
import logging

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from admin_site.exceptions import DuplicatePending, EntryNotPending, WorkflowError
from consultation.workflow import create_visit
from patient.card import can_create_visit
from patient.models import PreRegistrationModel

logger = logging.getLogger(__name__)

VALID_PRIORITIES = (1, 2, 3)


def _duplicate(phone, patient):
    query = Q(phone=phone)
    if patient is not None:
        query |= Q(patient=patient)
    return PreRegistrationModel.objects.filter(query, status=PreRegistrationModel.PENDING).first()


def add_entry(full_name, phone, priority=3, patient=None, notes='', actor=None):
    phone = (phone or '').strip()
    full_name = (full_name or '').strip()
    if not full_name or not phone:
        raise WorkflowError('Name and phone number are required.')
    try:
        priority = int(priority)
    except (TypeError, ValueError):
        priority = None
    if priority not in VALID_PRIORITIES:
        raise WorkflowError('Priority must be 1 (urgent), 2 (priority) or 3 (normal).')

    existing = _duplicate(phone, patient)
    if existing is not None:
        raise DuplicatePending(existing_entry_id=existing.pk)

    try:
        with transaction.atomic():
            entry = PreRegistrationModel.objects.create(
                full_name=full_name,
                phone=phone,
                priority=priority,
                patient=patient,
                notes=notes or '',
                created_by=actor,
            )
    except IntegrityError as e:
        # a concurrent request added the same phone or patient first
        existing = _duplicate(phone, patient)
        raise DuplicatePending(existing_entry_id=existing.pk if existing else None) from e

    logger.info(f"Pre-registration {entry.pk} added for {phone} (priority {priority})")
    return entry


def pending_entries():
    return (
        PreRegistrationModel.objects
        .filter(status=PreRegistrationModel.PENDING)
        .select_related('patient')
        .order_by('priority', 'created_at', 'id')
    )


def _claim(entry_id, new_status, stamp_fields):
    updated = PreRegistrationModel.objects.filter(
        pk=entry_id, status=PreRegistrationModel.PENDING
    ).update(status=new_status, **stamp_fields)
    entry = PreRegistrationModel.objects.select_related('patient').get(pk=entry_id)
    if not updated:
        raise EntryNotPending(entry_id=entry.pk, current_status=entry.status)
    return entry


def process_entry(entry_id, actor=None):
    """
    Serve an entry. A linked patient whose card allows it gets a visit
    straight away; anyone else is sent on to registration with the entry's
    details.
    """
    with transaction.atomic():
        entry = _claim(entry_id, PreRegistrationModel.COMPLETED,
                       {'processed_at': timezone.now(), 'processed_by': actor})

        if entry.patient is not None and can_create_visit(entry.patient):
            visit = create_visit(entry.patient, priority=entry.priority, actor=actor)
            entry.visit = visit
            entry.save(update_fields=['visit'])
            logger.info(f"Pre-registration {entry.pk} processed into visit {visit.visit_uid}")
            return {'action': 'visit_created', 'entry': entry, 'visit': visit}

    reason = 'card_inactive' if entry.patient is not None else 'not_registered'
    logger.info(f"Pre-registration {entry.pk} redirected to registration ({reason})")
    return {
        'action': 'redirect_to_registration',
        'entry': entry,
        'visit': None,
        'reason': reason,
        'prefill': {
            'full_name': entry.full_name,
            'phone': entry.phone,
            'patient_id': entry.patient_id,
            'priority': entry.priority,
        },
    }


def cancel_entry(entry_id, actor=None):
    entry = _claim(entry_id, PreRegistrationModel.CANCELLED,
                   {'cancelled_at': timezone.now(), 'cancelled_by': actor})
    logger.info(f"Pre-registration {entry.pk} cancelled")
    return entry
