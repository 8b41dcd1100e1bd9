from consultation.models import InvestigationOrderModel


class LabTestOrderModel(InvestigationOrderModel):
    """Laboratory test ordered by a doctor during a visit"""
    ORDER_PREFIX = 'LAB'

    class Meta(InvestigationOrderModel.Meta):
        verbose_name = 'Lab Test Order'
