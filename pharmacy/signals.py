from django.dispatch import receiver

from finance.models import BillingModel
from finance.signals import billing_settled
from pharmacy.models import DrugOrderModel


@receiver(billing_settled)
def release_drug_orders_on_payment(sender, billing, **kwargs):
    """Paid prescriptions join the pharmacy queue."""
    if billing.billing_type != BillingModel.PHARMACY:
        return
    from consultation.orders import release_orders_for_billing
    release_orders_for_billing(DrugOrderModel, billing)
