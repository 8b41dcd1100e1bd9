from django.db.models.signals import post_save
from django.dispatch import receiver
from django.utils.html import escape

from admin_site.utils import log_activity
from finance.models import BillingModel
from finance.signals import billing_settled
from laboratory.models import LabTestOrderModel


@receiver(billing_settled)
def release_lab_orders_on_payment(sender, billing, **kwargs):
    if billing.billing_type != BillingModel.LAB:
        return
    from consultation.orders import release_orders_for_billing
    release_orders_for_billing(LabTestOrderModel, billing)


@receiver(post_save, sender=LabTestOrderModel)
def log_lab_result(sender, instance, created, **kwargs):
    if not created and instance.status == LabTestOrderModel.COMPLETED:
        log_activity(
            instance.completed_by, 'bg-info text-white',
            f"recorded results for lab order <b>{escape(instance.order_number)}</b> "
            f"({escape(instance.service.name)}) for {escape(str(instance.patient))}",
            category='laboratory', sub_category='result', keywords='lab_order__complete'
        )
