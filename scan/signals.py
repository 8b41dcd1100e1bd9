from django.db.models.signals import post_save
from django.dispatch import receiver
from django.utils.html import escape

from admin_site.utils import log_activity
from finance.models import BillingModel
from finance.signals import billing_settled
from scan.models import ScanOrderModel


@receiver(billing_settled)
def release_scan_orders_on_payment(sender, billing, **kwargs):
    if billing.billing_type != BillingModel.RADIOLOGY:
        return
    from consultation.orders import release_orders_for_billing
    release_orders_for_billing(ScanOrderModel, billing)


@receiver(post_save, sender=ScanOrderModel)
def log_scan_result(sender, instance, created, **kwargs):
    if not created and instance.status == ScanOrderModel.COMPLETED:
        log_activity(
            instance.completed_by, 'bg-info text-white',
            f"recorded results for scan order <b>{escape(instance.order_number)}</b> "
            f"({escape(instance.service.name)}) for {escape(str(instance.patient))}",
            category='scan', sub_category='result', keywords='scan_order__complete'
        )
