import logging

from django.db.models.signals import post_save
from django.dispatch import receiver, Signal
from django.utils.html import escape

from admin_site.utils import log_activity
from finance.models import BillPaymentModel

logger = logging.getLogger(__name__)

# Sent once per billing, the first time its payments cover its total (or,
# for emergency billings, when payment is acknowledged).
# kwargs: billing, actor
billing_settled = Signal()


@receiver(post_save, sender=BillPaymentModel)
def log_bill_payment_create(sender, instance, created, **kwargs):
    if created:
        billing = instance.billing
        log_activity(
            instance.received_by, 'bg-success text-white',
            f"received <b>{instance.get_method_display()}</b> payment of ₦{instance.amount} "
            f"for billing {escape(billing.billing_number)} ({escape(str(billing.patient))})",
            category='finance', sub_category='payment', keywords='payment__create'
        )


@receiver(billing_settled)
def log_billing_settled(sender, billing, actor=None, **kwargs):
    if billing.is_emergency:
        message = (f"acknowledged emergency payment of ₦{billing.frozen_total} "
                   f"for billing {escape(billing.billing_number)} ({escape(str(billing.patient))})")
    else:
        message = (f"settled <b>{billing.get_billing_type_display()}</b> billing "
                   f"{escape(billing.billing_number)} (₦{billing.total_amount}) for {escape(str(billing.patient))}")
    log_activity(actor, 'bg-info text-white', message,
                 category='finance', sub_category='billing', keywords='billing__settled')
