import logging

from django.contrib.auth.decorators import login_required, permission_required
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_POST, require_GET

from admin_site.utils import workflow_json_view, request_data, form_error_response
from consultation import workflow, orders
from consultation.forms import VisitCreateForm, PatientVitalsForm
from consultation.models import ConsultantModel, VisitModel
from consultation.queue import queue_for, doctors_queue_status, recommend_doctor, workload
from finance.ledger import billing_summary
from service.models import Service

logger = logging.getLogger(__name__)


def serialize_visit(visit, detail=False):
    data = {
        'id': visit.id,
        'visit_uid': visit.visit_uid,
        'patient': {'id': visit.patient_id, 'full_name': str(visit.patient), 'card_number': visit.patient.card_number},
        'status': visit.status,
        'status_display': visit.get_status_display(),
        'version': visit.version,
        'is_emergency': visit.is_emergency,
        'queue_type': visit.queue_type,
        'priority': visit.priority,
        'consultant': {'id': visit.consultant_id, 'name': str(visit.consultant)} if visit.consultant_id else None,
        'results_progress': visit.results_progress,
        'outstanding_orders': visit.outstanding_orders,
        'created_at': visit.created_at.isoformat(),
    }
    if detail:
        data['allowed_events'] = workflow.allowed_events(visit)
        data['billings'] = [billing_summary(b) for b in visit.billings.order_by('id')]
        data['history'] = [
            {
                'from_status': h.from_status,
                'to_status': h.to_status,
                'event': h.event,
                'changed_by': str(h.changed_by) if h.changed_by else 'System',
                'changed_at': h.changed_at.isoformat(),
            }
            for h in visit.status_history.select_related('changed_by')
        ]
    return data


def _id_list(request, data, key):
    if isinstance(data.get(key), list):
        return data[key]
    return request.POST.getlist(key) or request.POST.getlist(f'{key}[]')


def _consultant_for(user):
    return ConsultantModel.objects.filter(user=user).first()


@require_POST
@login_required
@permission_required('consultation.add_visitmodel', raise_exception=True)
@workflow_json_view
def create_visit_ajax(request):
    form = VisitCreateForm(request_data(request))
    if not form.is_valid():
        return form_error_response(form)

    data = form.cleaned_data
    visit = workflow.create_visit(
        data['patient'],
        is_emergency=data['is_emergency'],
        queue_type=data['queue_type'],
        priority=data['priority'],
        consultant=data['consultant'],
        chief_complaint=data['chief_complaint'],
        actor=request.user,
    )
    return JsonResponse({'success': True, 'visit': serialize_visit(visit, detail=True)}, status=201)


@require_GET
@login_required
@workflow_json_view
def visit_detail_ajax(request, pk):
    visit = get_object_or_404(VisitModel.objects.select_related('patient', 'consultant__user'), pk=pk)
    return JsonResponse({'success': True, 'visit': serialize_visit(visit, detail=True)})


@require_POST
@login_required
@permission_required('consultation.add_patientvitalsmodel', raise_exception=True)
@workflow_json_view
def record_vitals_ajax(request, pk):
    """Nurse records vitals and sends the patient to a doctor (chosen, or least busy)"""
    visit = get_object_or_404(VisitModel, pk=pk)
    data = request_data(request)
    form = PatientVitalsForm(data)
    if not form.is_valid():
        return form_error_response(form)

    consultant = None
    if data.get('consultant_id'):
        consultant = get_object_or_404(ConsultantModel, pk=data['consultant_id'])

    vitals, doctor = workflow.record_vitals_and_assign(
        visit, vitals=form.cleaned_data, consultant=consultant,
        expected_status=data.get('expected_status') or None, actor=request.user
    )
    return JsonResponse({
        'success': True,
        'message': f'Vitals recorded. Patient sent to {doctor}.',
        'vitals': {'id': vitals.id, 'bmi': str(vitals.bmi) if vitals.bmi is not None else None,
                   'blood_pressure': vitals.blood_pressure},
        'visit': serialize_visit(visit),
    })


def _simple_transition(request, pk, action):
    visit = get_object_or_404(VisitModel, pk=pk)
    data = request_data(request)
    action(visit, expected_status=data.get('expected_status') or None, actor=request.user)
    return JsonResponse({'success': True, 'visit': serialize_visit(visit)})


@require_POST
@login_required
@permission_required('consultation.change_visitmodel', raise_exception=True)
@workflow_json_view
def start_review_ajax(request, pk):
    visit = get_object_or_404(VisitModel, pk=pk)
    data = request_data(request)
    workflow.start_review(visit, consultant=_consultant_for(request.user),
                          expected_status=data.get('expected_status') or None, actor=request.user)
    return JsonResponse({'success': True, 'visit': serialize_visit(visit)})


@require_POST
@login_required
@permission_required('consultation.change_visitmodel', raise_exception=True)
@workflow_json_view
def review_results_ajax(request, pk):
    return _simple_transition(request, pk, workflow.review_results)


@require_POST
@login_required
@permission_required('consultation.change_visitmodel', raise_exception=True)
@workflow_json_view
def complete_visit_ajax(request, pk):
    return _simple_transition(request, pk, workflow.complete_visit)


@require_POST
@login_required
@permission_required('consultation.change_visitmodel', raise_exception=True)
@workflow_json_view
def cancel_visit_ajax(request, pk):
    return _simple_transition(request, pk, workflow.cancel_visit)


@require_POST
@login_required
@permission_required('consultation.change_visitmodel', raise_exception=True)
@workflow_json_view
def order_investigations_ajax(request, pk):
    visit = get_object_or_404(VisitModel, pk=pk)
    data = request_data(request)
    lab_ids = _id_list(request, data, 'lab_service_ids')
    radiology_ids = _id_list(request, data, 'radiology_service_ids')

    lab_services = list(Service.objects.filter(pk__in=lab_ids, category='lab', is_active=True))
    radiology_services = list(Service.objects.filter(pk__in=radiology_ids, category='radiology', is_active=True))
    if len(lab_services) != len(set(lab_ids)) or len(radiology_services) != len(set(radiology_ids)):
        return JsonResponse({'success': False, 'error': 'One or more selected services are not available'},
                            status=400)

    placed = orders.place_investigation_orders(
        visit, lab_services=lab_services, radiology_services=radiology_services,
        special_instructions=data.get('special_instructions', ''),
        expected_status=data.get('expected_status') or None, actor=request.user
    )
    return JsonResponse({
        'success': True,
        'orders': [
            {'id': o.id, 'order_number': o.order_number, 'department': o._meta.app_label, 'status': o.status}
            for o in placed
        ],
        'visit': serialize_visit(visit, detail=True),
    }, status=201)


@require_POST
@login_required
@permission_required('consultation.change_visitmodel', raise_exception=True)
@workflow_json_view
def prescribe_ajax(request, pk):
    """``items``: [{"service_id": .., "quantity": .., "dosage_instructions": ..}]"""
    visit = get_object_or_404(VisitModel, pk=pk)
    data = request_data(request)
    raw_items = data.get('items') or []
    if not isinstance(raw_items, list) or not raw_items:
        return JsonResponse({'success': False, 'error': 'No medications selected'}, status=400)

    services = Service.objects.in_bulk([item.get('service_id') for item in raw_items if isinstance(item, dict)])
    items = []
    for item in raw_items:
        service = services.get(item.get('service_id')) if isinstance(item, dict) else None
        if service is None or service.category != 'medication' or not service.is_active:
            return JsonResponse({'success': False, 'error': 'One or more medications are not available'},
                                status=400)
        try:
            quantity = int(item.get('quantity') or 1)
        except (TypeError, ValueError):
            quantity = 0
        if quantity < 1:
            return JsonResponse({'success': False, 'error': f'Enter a valid quantity for {service.name}'},
                                status=400)
        items.append({
            'service': service,
            'quantity': quantity,
            'dosage_instructions': item.get('dosage_instructions', ''),
        })

    drug_orders = orders.prescribe_medications(
        visit, items, expected_status=data.get('expected_status') or None, actor=request.user
    )
    return JsonResponse({
        'success': True,
        'orders': [{'id': o.id, 'order_number': o.order_number, 'status': o.status} for o in drug_orders],
        'visit': serialize_visit(visit, detail=True),
    }, status=201)


# -------------------------
# Doctor queues
# -------------------------
@require_GET
@login_required
@workflow_json_view
def doctor_queue_ajax(request, consultant_id=None):
    """A doctor's open visits; without an id, the signed-in doctor's own queue"""
    if consultant_id is None:
        consultant = _consultant_for(request.user)
        if consultant is None:
            return JsonResponse({'success': False, 'error': 'You are not registered as a consultant'}, status=403)
    else:
        consultant = get_object_or_404(ConsultantModel, pk=consultant_id)

    visits = queue_for(consultant)
    return JsonResponse({
        'success': True,
        'consultant': {'id': consultant.id, 'name': str(consultant), 'workload': workload(consultant)},
        'visits': [serialize_visit(v) for v in visits],
    })


@require_GET
@login_required
@workflow_json_view
def doctors_queue_status_ajax(request):
    return JsonResponse({'success': True, **doctors_queue_status()})


@require_GET
@login_required
@workflow_json_view
def recommend_doctor_ajax(request):
    doctor = recommend_doctor()
    if doctor is None:
        return JsonResponse({'success': False, 'error': 'No doctor is currently available'}, status=404)
    return JsonResponse({
        'success': True,
        'consultant': {'id': doctor.id, 'name': str(doctor), 'workload': workload(doctor)},
    })


def serialize_order(order):
    """Laboratory or radiology order as shown on department queues"""
    return {
        'id': order.id,
        'order_number': order.order_number,
        'status': order.status,
        'status_display': order.get_status_display(),
        'service': {'id': order.service_id, 'code': order.service.code, 'name': order.service.name},
        'patient': {'id': order.patient_id, 'full_name': str(order.patient)},
        'visit': {'id': order.visit_id, 'visit_uid': order.visit.visit_uid, 'is_emergency': order.visit.is_emergency},
        'billing_id': order.billing_id,
        'special_instructions': order.special_instructions,
        'queued_at': order.queued_at.isoformat() if order.queued_at else None,
        'started_at': order.started_at.isoformat() if order.started_at else None,
        'completed_at': order.completed_at.isoformat() if order.completed_at else None,
        'result_reference': order.result_reference,
    }
