import logging

from django.contrib.auth.decorators import login_required, permission_required
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_POST, require_GET

from admin_site.utils import workflow_json_view, request_data
from consultation.models import VisitModel
from consultation.orders import dispense_medications
from pharmacy.models import DrugOrderModel

logger = logging.getLogger(__name__)


def serialize_drug_order(order):
    return {
        'id': order.id,
        'order_number': order.order_number,
        'drug': order.service.name,
        'quantity': order.quantity,
        'dosage_instructions': order.dosage_instructions,
        'status': order.status,
        'billing_id': order.billing_id,
    }


@require_GET
@login_required
@permission_required('pharmacy.view_drugordermodel', raise_exception=True)
@workflow_json_view
def pharmacy_queue_ajax(request):
    """Prescriptions ready to dispense, grouped per visit, emergencies first"""
    orders = (
        DrugOrderModel.objects
        .filter(status=DrugOrderModel.QUEUED, visit__status=VisitModel.SENT_TO_PHARMACY)
        .select_related('visit', 'patient', 'service')
        .order_by('-visit__is_emergency', 'queued_at', 'id')
    )

    visits = {}
    for order in orders:
        entry = visits.setdefault(order.visit_id, {
            'visit_id': order.visit_id,
            'visit_uid': order.visit.visit_uid,
            'is_emergency': order.visit.is_emergency,
            'patient': str(order.patient),
            'orders': [],
        })
        entry['orders'].append(serialize_drug_order(order))
    return JsonResponse({'success': True, 'visits': list(visits.values())})


@require_POST
@login_required
@permission_required('pharmacy.change_drugordermodel', raise_exception=True)
@workflow_json_view
def dispense_ajax(request, visit_id):
    visit = get_object_or_404(VisitModel, pk=visit_id)
    data = request_data(request)
    count = dispense_medications(visit, expected_status=data.get('expected_status') or None, actor=request.user)
    return JsonResponse({
        'success': True,
        'message': f'{count} medication(s) dispensed. Visit completed.',
        'dispensed': count,
        'visit_status': visit.status,
    })
