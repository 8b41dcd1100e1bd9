"""
Billing ledger: service line items, payments and settlement.

All amounts are compared in integer cents. Every write locks the billing
row so that concurrent payments on one billing serialise, and settlement
is recorded once: the first write that brings the amount paid up to the
total stamps ``settled_at`` and sends ``billing_settled``. From then on the
line items are frozen while further payments are still accepted for audit.
"""
import logging

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from admin_site.exceptions import (
    BillingAlreadySettled, InvalidAmount, InvalidPaymentMethodData, UnsupportedBillingOperation
)
from finance.models import BillingModel, BillingServiceModel, BillPaymentModel, InsuranceProviderModel
from finance.money import to_decimal, quantize_money, to_cents, from_cents
from finance.signals import billing_settled

logger = logging.getLogger(__name__)


# -------------------------
# Reads
# -------------------------
def billing_total(billing):
    if billing.is_emergency and billing.frozen_total is not None:
        return billing.frozen_total
    total = billing.services.aggregate(total=Sum('line_total'))['total']
    return quantize_money(total or 0)


def paid_total(billing):
    total = billing.payments.aggregate(total=Sum('amount'))['total']
    return quantize_money(total or 0)


def is_settled(billing):
    """paid >= total; no side effects. Emergency billings settle only through acknowledgment."""
    if billing.is_emergency:
        return billing.acknowledged_at is not None
    return to_cents(paid_total(billing)) >= to_cents(billing_total(billing))


def outstanding_amount(billing):
    if billing.is_emergency and billing.acknowledged_at is None:
        return billing_total(billing)
    return from_cents(max(0, to_cents(billing_total(billing)) - to_cents(paid_total(billing))))


def overpaid_amount(billing):
    if billing.is_emergency:
        return from_cents(0)
    return from_cents(max(0, to_cents(paid_total(billing)) - to_cents(billing_total(billing))))


def billing_summary(billing):
    return {
        'id': billing.id,
        'billing_number': billing.billing_number,
        'billing_type': billing.billing_type,
        'status': billing.status,
        'patient_id': billing.patient_id,
        'visit_id': billing.visit_id,
        'total_amount': str(billing_total(billing)),
        'amount_paid': str(paid_total(billing)),
        'outstanding_amount': str(outstanding_amount(billing)),
        'overpaid_amount': str(overpaid_amount(billing)),
        'is_settled': is_settled(billing),
        'settled_at': billing.settled_at.isoformat() if billing.settled_at else None,
        'services': [
            {
                'id': line.id,
                'service_code': line.service.code,
                'description': line.description,
                'unit_price': str(line.unit_price),
                'quantity': line.quantity,
                'line_total': str(line.line_total),
            }
            for line in billing.services.select_related('service')
        ],
        'payments': [
            {
                'id': p.id,
                'method': p.method,
                'amount': str(p.amount),
                'created_at': p.created_at.isoformat(),
            }
            for p in billing.payments.all()
        ],
    }


def billings_for_visit(visit, billing_type):
    return BillingModel.objects.filter(visit=visit, billing_type=billing_type).order_by('id')


def first_unsettled_billing(visit, billing_type):
    """
    The first billing of ``billing_type`` on ``visit`` that is not settled.
    Returns (None, False) when every billing of that type is settled and
    (None, True) when the visit has no billing of that type at all.
    """
    billings = list(billings_for_visit(visit, billing_type))
    if not billings:
        return None, True
    for billing in billings:
        if not is_settled(billing):
            return billing, False
    return None, False


# -------------------------
# Writes
# -------------------------
def _lock(billing):
    return BillingModel.objects.select_for_update().get(pk=billing.pk)


def _refresh_totals(billing):
    billing.total_amount = billing_total(billing)
    billing.amount_paid = paid_total(billing)
    if billing.is_emergency:
        return
    if billing.settled_at or to_cents(billing.amount_paid) >= to_cents(billing.total_amount) > 0:
        billing.status = BillingModel.PAID
    elif billing.amount_paid > 0:
        billing.status = BillingModel.PARTIALLY_PAID
    else:
        billing.status = BillingModel.PENDING


def _has_entries(billing):
    return billing.services.exists() or billing.payments.exists()


def _settle_if_covered(billing, actor=None):
    """Record settlement on the locked billing the first time it is covered."""
    if billing.settled_at or billing.is_emergency:
        return False
    if not _has_entries(billing) or not is_settled(billing):
        return False

    billing.settled_at = timezone.now()
    billing.status = BillingModel.PAID
    billing.save(update_fields=['settled_at', 'status', 'total_amount', 'amount_paid', 'updated_at'])
    logger.info(f"Billing {billing.billing_number} settled ({billing.billing_type})")
    billing_settled.send(sender=BillingModel, billing=billing, actor=actor)
    return True


def _guard_mutable(billing):
    if billing.is_emergency and billing.acknowledged_at is not None:
        raise BillingAlreadySettled(
            'Emergency billing has been acknowledged and can no longer be changed.',
            billing_id=billing.id
        )
    if billing.is_locked:
        raise BillingAlreadySettled(billing_id=billing.id)


def _line_items(services):
    """Normalise Service, (service, quantity) or (service, quantity, unit_price) entries."""
    for item in services:
        if isinstance(item, (tuple, list)):
            service = item[0]
            quantity = item[1] if len(item) > 1 else 1
            unit_price = item[2] if len(item) > 2 else None
        else:
            service, quantity, unit_price = item, 1, None
        yield service, quantity, unit_price


def _create_line(billing, service, quantity=1, unit_price=None, actor=None):
    quantity = int(quantity or 1)
    if quantity < 1:
        raise InvalidAmount('Quantity must be at least 1.', service_code=service.code)
    price = quantize_money(to_decimal(unit_price) if unit_price is not None else service.price)
    if price < 0:
        raise InvalidAmount('Unit price cannot be negative.', service_code=service.code)
    return BillingServiceModel.objects.create(
        billing=billing,
        service=service,
        unit_price=price,
        quantity=quantity,
        created_by=actor,
    )


@transaction.atomic
def open_billing(patient, billing_type, visit=None, services=(), actor=None, notes=''):
    status = BillingModel.EMERGENCY_PENDING if billing_type == BillingModel.EMERGENCY else BillingModel.PENDING
    billing = BillingModel.objects.create(
        patient=patient,
        visit=visit,
        billing_type=billing_type,
        status=status,
        notes=notes,
        created_by=actor,
    )
    for service, quantity, unit_price in _line_items(services):
        _create_line(billing, service, quantity, unit_price, actor)

    _refresh_totals(billing)
    billing.save(update_fields=['total_amount', 'amount_paid', 'status', 'updated_at'])
    logger.info(f"Opened {billing_type} billing {billing.billing_number} for patient {patient.pk}")
    return billing


def settle_if_covered(billing, actor=None):
    """Record settlement for a billing whose total is already covered, e.g. a free service."""
    with transaction.atomic():
        locked = _lock(billing)
        _refresh_totals(locked)
        settled = _settle_if_covered(locked, actor)
    billing.refresh_from_db()
    return settled


def add_service(billing, service, quantity=1, unit_price=None, actor=None):
    with transaction.atomic():
        locked = _lock(billing)
        _guard_mutable(locked)
        line = _create_line(locked, service, quantity, unit_price, actor)
        _refresh_totals(locked)
        locked.save(update_fields=['total_amount', 'amount_paid', 'status', 'updated_at'])
    billing.refresh_from_db()
    return line


def remove_service(billing, billing_service_id, actor=None):
    with transaction.atomic():
        locked = _lock(billing)
        _guard_mutable(locked)
        line = locked.services.get(pk=billing_service_id)
        line.delete()
        _refresh_totals(locked)
        locked.save(update_fields=['total_amount', 'amount_paid', 'status', 'updated_at'])
        # removing a line can leave existing payments covering the rest
        if locked.amount_paid > 0:
            _settle_if_covered(locked, actor)
    billing.refresh_from_db()
    return line


# -------------------------
# Payment method validation
# -------------------------
def _validate_cash(data):
    return {}


def _validate_charity(data):
    return {}


def _validate_bank(data):
    bank_name = (data.get('bank_name') or '').strip()
    trans_number = (data.get('trans_number') or '').strip()
    missing = [name for name, value in (('bank_name', bank_name), ('trans_number', trans_number)) if not value]
    if missing:
        raise InvalidPaymentMethodData(
            'Bank name and transaction number are required for bank payments.', missing_fields=missing
        )
    return {'bank_name': bank_name, 'trans_number': trans_number}


def _validate_insurance(data):
    insurance = data.get('insurance')
    if isinstance(insurance, InsuranceProviderModel):
        provider = insurance if insurance.status == 'active' else None
    elif insurance:
        provider = InsuranceProviderModel.objects.filter(code=str(insurance).strip().upper(), status='active').first()
    else:
        raise InvalidPaymentMethodData('An insurance provider is required for insurance payments.',
                                       missing_fields=['insurance'])
    if provider is None:
        raise InvalidPaymentMethodData('Insurance provider is unknown or inactive.', insurance=str(insurance))
    return {'insurance': provider}


PAYMENT_METHOD_VALIDATORS = {
    'cash': _validate_cash,
    'bank': _validate_bank,
    'insurance': _validate_insurance,
    'charity': _validate_charity,
}


def record_payment(billing, method, amount, bank_name='', trans_number='', insurance=None, notes='', actor=None):
    """
    Append a payment and record settlement when the billing becomes covered.
    Overpayment is accepted; read overpaid_amount() for change due.
    """
    if billing.is_emergency:
        raise UnsupportedBillingOperation(
            'Emergency billings are settled by acknowledging payment, not by itemised payments.',
            billing_id=billing.id
        )

    amount = quantize_money(to_decimal(amount))
    if to_cents(amount) <= 0:
        raise InvalidAmount(amount=amount)

    validator = PAYMENT_METHOD_VALIDATORS.get((method or '').lower())
    if validator is None:
        raise InvalidPaymentMethodData(f"Unsupported payment method '{method}'.", method=method)
    method_fields = validator({'bank_name': bank_name, 'trans_number': trans_number, 'insurance': insurance})

    with transaction.atomic():
        locked = _lock(billing)
        payment = BillPaymentModel.objects.create(
            billing=locked,
            method=method.lower(),
            amount=amount,
            notes=notes or '',
            received_by=actor,
            **method_fields
        )
        _refresh_totals(locked)
        locked.save(update_fields=['total_amount', 'amount_paid', 'status', 'updated_at'])
        _settle_if_covered(locked, actor)

    billing.refresh_from_db()
    logger.info(f"Payment {payment.pk} of {amount} ({method}) on billing {billing.billing_number}")
    return payment
