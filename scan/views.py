import logging

from django.contrib.auth.decorators import login_required, permission_required
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_POST, require_GET

from admin_site.utils import workflow_json_view, request_data
from consultation.orders import accept_order, complete_order, department_queue
from consultation.views import serialize_order
from scan.models import ScanOrderModel

logger = logging.getLogger(__name__)


@require_GET
@login_required
@permission_required('scan.view_scanordermodel', raise_exception=True)
@workflow_json_view
def scan_queue_ajax(request):
    """Radiology studies ready for imaging"""
    orders = department_queue(ScanOrderModel)
    return JsonResponse({'success': True, 'orders': [serialize_order(o) for o in orders]})


@require_GET
@login_required
@permission_required('scan.view_scanordermodel', raise_exception=True)
@workflow_json_view
def scan_order_detail_ajax(request, pk):
    order = get_object_or_404(ScanOrderModel.objects.select_related('visit', 'patient', 'service'), pk=pk)
    data = serialize_order(order)
    data['result_notes'] = order.result_notes
    return JsonResponse({'success': True, 'order': data})


@require_POST
@login_required
@permission_required('scan.change_scanordermodel', raise_exception=True)
@workflow_json_view
def scan_order_accept_ajax(request, pk):
    order = get_object_or_404(ScanOrderModel, pk=pk)
    accept_order(order, actor=request.user)
    return JsonResponse({
        'success': True,
        'message': f'Scan order {order.order_number} accepted for processing.',
        'order': serialize_order(order),
    })


@require_POST
@login_required
@permission_required('scan.change_scanordermodel', raise_exception=True)
@workflow_json_view
def scan_order_complete_ajax(request, pk):
    order = get_object_or_404(ScanOrderModel, pk=pk)
    data = request_data(request)
    complete_order(order, result_reference=data.get('result_reference', ''), notes=data.get('notes', ''),
                   actor=request.user)
    return JsonResponse({
        'success': True,
        'message': f'Results recorded for {order.order_number}.',
        'order': serialize_order(order),
        'visit_status': order.visit.status,
    })
