import logging

from django.contrib.auth.decorators import login_required, permission_required
from django.db.models import Q
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_POST, require_GET

from admin_site.utils import workflow_json_view, request_data, form_error_response
from finance.ledger import billing_summary
from patient import card, preregistration
from patient.forms import PatientForm, PreRegistrationForm, PatientSettingForm
from patient.models import PatientModel, PreRegistrationModel, get_patient_setting

# Set up logging
logger = logging.getLogger(__name__)


def serialize_patient(patient):
    return {
        'id': patient.id,
        'card_number': patient.card_number,
        'full_name': str(patient),
        'gender': patient.gender,
        'mobile': patient.mobile,
        'card_status': patient.card_status,
        'card_expiry_date': patient.card_expiry_date.isoformat() if patient.card_expiry_date else None,
    }


def serialize_entry(entry):
    return {
        'id': entry.id,
        'full_name': entry.full_name,
        'phone': entry.phone,
        'priority': entry.priority,
        'priority_display': entry.get_priority_display(),
        'patient_id': entry.patient_id,
        'status': entry.status,
        'notes': entry.notes,
        'created_at': entry.created_at.isoformat(),
        'visit_id': entry.visit_id,
    }


@require_POST
@login_required
@permission_required('patient.add_patientmodel', raise_exception=True)
@workflow_json_view
def register_patient_ajax(request):
    """Register a patient; the card stays INACTIVE until the registration billing is paid"""
    form = PatientForm(request_data(request))
    if not form.is_valid():
        return form_error_response(form)

    patient, billing = card.register_patient(form.cleaned_data, actor=request.user)
    return JsonResponse({
        'success': True,
        'message': f'Patient registered with card number {patient.card_number}. '
                   f'Card will be active once billing {billing.billing_number} is paid.',
        'patient': serialize_patient(patient),
        'billing': billing_summary(billing),
    }, status=201)


@require_GET
@login_required
@workflow_json_view
def patient_search_ajax(request):
    query = request.GET.get('q', '').strip()
    if len(query) < 2:
        return JsonResponse({'success': False, 'error': 'Enter at least 2 characters'}, status=400)

    patients = PatientModel.objects.filter(
        Q(card_number__icontains=query) | Q(first_name__icontains=query) |
        Q(last_name__icontains=query) | Q(mobile__icontains=query)
    )[:20]
    return JsonResponse({'success': True, 'patients': [serialize_patient(p) for p in patients]})


@require_GET
@login_required
@workflow_json_view
def patient_card_status_ajax(request, pk):
    patient = get_object_or_404(PatientModel, pk=pk)
    card.refresh_card_status(patient)
    pending = card.pending_card_billing(patient)
    return JsonResponse({
        'success': True,
        'patient': serialize_patient(patient),
        'can_create_visit': patient.card_status == PatientModel.CARD_ACTIVE,
        'pending_card_billing': billing_summary(pending) if pending else None,
    })


@require_POST
@login_required
@permission_required('patient.change_patientmodel', raise_exception=True)
@workflow_json_view
def request_card_activation_ajax(request, pk):
    patient = get_object_or_404(PatientModel, pk=pk)
    result = card.request_activation(patient, actor=request.user)

    messages = {
        'already_active': 'Card is already active.',
        'pending_billing': 'An unpaid card billing already exists for this patient.',
        'billing_opened': 'Card activation billing created. The card activates once it is paid.',
    }
    return JsonResponse({
        'success': True,
        'action': result['action'],
        'message': messages[result['action']],
        'patient': serialize_patient(patient),
        'billing': billing_summary(result['billing']) if result['billing'] else None,
    })


# -------------------------
# Pre-registration queue
# -------------------------
@require_GET
@login_required
@workflow_json_view
def pre_registration_list_ajax(request):
    entries = preregistration.pending_entries()
    return JsonResponse({'success': True, 'entries': [serialize_entry(e) for e in entries]})


@require_POST
@login_required
@permission_required('patient.add_preregistrationmodel', raise_exception=True)
@workflow_json_view
def pre_registration_add_ajax(request):
    form = PreRegistrationForm(request_data(request))
    if not form.is_valid():
        return form_error_response(form)

    data = form.cleaned_data
    entry = preregistration.add_entry(
        data['full_name'], data['phone'], priority=data['priority'], patient=data.get('patient'),
        notes=data.get('notes', ''), actor=request.user
    )
    return JsonResponse({'success': True, 'entry': serialize_entry(entry)}, status=201)


@require_POST
@login_required
@permission_required('patient.change_preregistrationmodel', raise_exception=True)
@workflow_json_view
def pre_registration_process_ajax(request, pk):
    get_object_or_404(PreRegistrationModel, pk=pk)
    result = preregistration.process_entry(pk, actor=request.user)

    response = {
        'success': True,
        'action': result['action'],
        'entry': serialize_entry(result['entry']),
    }
    if result['visit'] is not None:
        response['visit'] = {
            'id': result['visit'].id,
            'visit_uid': result['visit'].visit_uid,
            'status': result['visit'].status,
        }
    else:
        response['reason'] = result['reason']
        response['prefill'] = result['prefill']
    return JsonResponse(response)


@require_POST
@login_required
@permission_required('patient.change_preregistrationmodel', raise_exception=True)
@workflow_json_view
def pre_registration_cancel_ajax(request, pk):
    get_object_or_404(PreRegistrationModel, pk=pk)
    entry = preregistration.cancel_entry(pk, actor=request.user)
    return JsonResponse({'success': True, 'entry': serialize_entry(entry)})


@require_POST
@login_required
@permission_required('patient.change_patientsettingmodel', raise_exception=True)
def patient_setting_update_ajax(request):
    setting = get_patient_setting()
    form = PatientSettingForm(request_data(request), instance=setting)
    if not form.is_valid():
        return form_error_response(form)

    setting = form.save(commit=False)
    setting.updated_by = request.user
    setting.save()
    return JsonResponse({
        'success': True,
        'setting': {
            'card_validity_days': setting.card_validity_days,
            'card_registration_service_code': setting.card_registration_service_code,
            'card_activation_service_code': setting.card_activation_service_code,
            'patient_id_prefix': setting.patient_id_prefix,
        }
    })
