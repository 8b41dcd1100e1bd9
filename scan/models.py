from consultation.models import InvestigationOrderModel


class ScanOrderModel(InvestigationOrderModel):
    """Radiology/imaging study ordered by a doctor during a visit"""
    ORDER_PREFIX = 'SCN'

    class Meta(InvestigationOrderModel.Meta):
        verbose_name = 'Scan Order'
