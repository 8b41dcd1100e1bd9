import logging
from datetime import datetime, time

from django.contrib.auth.decorators import login_required, permission_required
from django.db.models import Sum
from django.http import HttpResponse, JsonResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.utils.timezone import now
from django.views.decorators.http import require_POST, require_GET
import openpyxl
from openpyxl.styles import Font, Alignment, PatternFill

from admin_site.utils import workflow_json_view, request_data, form_error_response
from finance import ledger, emergency
from finance.forms import BillPaymentForm, BillingServiceForm, InsuranceProviderForm, PaymentReportForm
from finance.models import BillingModel, BillPaymentModel, InsuranceProviderModel
from patient.models import PatientModel

logger = logging.getLogger(__name__)


@require_GET
@login_required
@workflow_json_view
def billing_detail_ajax(request, pk):
    billing = get_object_or_404(BillingModel, pk=pk)
    return JsonResponse({'success': True, 'billing': ledger.billing_summary(billing)})


@require_GET
@login_required
@workflow_json_view
def patient_billings_ajax(request, patient_id):
    """Billings for a patient; ``?open=1`` limits the list to those with a balance"""
    patient = get_object_or_404(PatientModel, pk=patient_id)
    billings = BillingModel.objects.filter(patient=patient).order_by('-id')
    if request.GET.get('open'):
        billings = billings.filter(settled_at__isnull=True)
    return JsonResponse({
        'success': True,
        'patient': {'id': patient.id, 'card_number': patient.card_number, 'full_name': str(patient)},
        'billings': [ledger.billing_summary(b) for b in billings],
    })


@require_POST
@login_required
@permission_required('finance.add_billingservicemodel', raise_exception=True)
@workflow_json_view
def billing_add_service_ajax(request, pk):
    billing = get_object_or_404(BillingModel, pk=pk)
    form = BillingServiceForm(request_data(request))
    if not form.is_valid():
        return form_error_response(form)

    data = form.cleaned_data
    if billing.is_emergency:
        line = emergency.add_emergency_service(billing, data['service'], data['quantity'], data['unit_price'],
                                               actor=request.user)
    else:
        line = ledger.add_service(billing, data['service'], data['quantity'], data['unit_price'], actor=request.user)

    return JsonResponse({
        'success': True,
        'message': f'{line.description} added',
        'billing': ledger.billing_summary(billing),
    }, status=201)


@require_POST
@login_required
@permission_required('finance.delete_billingservicemodel', raise_exception=True)
@workflow_json_view
def billing_remove_service_ajax(request, pk, line_id):
    billing = get_object_or_404(BillingModel, pk=pk)
    get_object_or_404(billing.services, pk=line_id)
    if billing.is_emergency:
        emergency.remove_emergency_service(billing, line_id, actor=request.user)
    else:
        ledger.remove_service(billing, line_id, actor=request.user)
    return JsonResponse({'success': True, 'billing': ledger.billing_summary(billing)})


@require_POST
@login_required
@permission_required('finance.add_billpaymentmodel', raise_exception=True)
@workflow_json_view
def record_payment_ajax(request, pk):
    billing = get_object_or_404(BillingModel, pk=pk)
    form = BillPaymentForm(request_data(request))
    if not form.is_valid():
        return form_error_response(form)

    data = form.cleaned_data
    payment = ledger.record_payment(
        billing, data['method'], data['amount'],
        bank_name=data.get('bank_name', ''),
        trans_number=data.get('trans_number', ''),
        insurance=data.get('insurance') or None,
        notes=data.get('notes', ''),
        actor=request.user,
    )

    summary = ledger.billing_summary(billing)
    if summary['is_settled']:
        message = 'Payment recorded. Billing is fully paid.'
    else:
        message = f"Payment recorded. Outstanding balance: ₦{summary['outstanding_amount']}"
    return JsonResponse({
        'success': True,
        'message': message,
        'payment_id': payment.id,
        'change_due': summary['overpaid_amount'],
        'billing': summary,
    }, status=201)


@require_POST
@login_required
@permission_required('finance.change_billingmodel', raise_exception=True)
@workflow_json_view
def emergency_acknowledge_ajax(request, pk):
    billing = get_object_or_404(BillingModel, pk=pk)
    data = request_data(request)
    emergency.acknowledge_payment(billing, notes=data.get('notes', ''), actor=request.user)
    visit = billing.visit
    message = f'Emergency payment of ₦{billing.frozen_total} acknowledged.'
    if visit and visit.status == visit.COMPLETED:
        message += ' Visit completed.'
    return JsonResponse({
        'success': True,
        'message': message,
        'billing': ledger.billing_summary(billing),
        'visit_status': visit.status if visit else None,
    })


@require_POST
@login_required
@permission_required('finance.add_insuranceprovidermodel', raise_exception=True)
def insurance_provider_create_ajax(request):
    form = InsuranceProviderForm(request_data(request))
    if not form.is_valid():
        return form_error_response(form)
    provider = form.save()
    return JsonResponse({
        'success': True,
        'provider': {'id': provider.id, 'name': provider.name, 'code': provider.code, 'status': provider.status}
    }, status=201)


def _day_bounds(start_date, end_date):
    tz = timezone.get_current_timezone()
    start = timezone.make_aware(datetime.combine(start_date, time.min), tz) if start_date else None
    end = timezone.make_aware(datetime.combine(end_date, time.max), tz) if end_date else None
    return start, end


@require_GET
@login_required
@permission_required('finance.view_billpaymentmodel', raise_exception=True)
def export_payments_excel(request):
    """
    Generate and download an Excel file of payments received in the date range
    """
    form = PaymentReportForm(request.GET)
    if not form.is_valid():
        return form_error_response(form)

    start_date = form.cleaned_data.get('start_date')
    end_date = form.cleaned_data.get('end_date')
    start, end = _day_bounds(start_date, end_date)

    payments = BillPaymentModel.objects.select_related('billing', 'billing__patient', 'received_by', 'insurance')
    if start:
        payments = payments.filter(created_at__gte=start)
    if end:
        payments = payments.filter(created_at__lte=end)
    payments = list(payments.order_by('created_at', 'id'))

    # Create Excel workbook and worksheet
    workbook = openpyxl.Workbook()
    worksheet = workbook.active
    worksheet.title = "Payments"

    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
    center_alignment = Alignment(horizontal="center")

    headers = [
        "S/N", "Patient Name", "Card Number", "Billing Number", "Billing Type",
        "Method", "Amount (₦)", "Reference", "Date", "Time", "Received By"
    ]
    for col_num, header in enumerate(headers, 1):
        cell = worksheet.cell(row=1, column=col_num)
        cell.value = header
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = center_alignment

    for row_num, payment in enumerate(payments, 2):
        billing = payment.billing
        if payment.method == 'bank':
            reference = f"{payment.bank_name} / {payment.trans_number}"
        elif payment.method == 'insurance' and payment.insurance:
            reference = payment.insurance.code
        else:
            reference = ""
        created = timezone.localtime(payment.created_at)
        worksheet.cell(row=row_num, column=1, value=row_num - 1)
        worksheet.cell(row=row_num, column=2, value=str(billing.patient))
        worksheet.cell(row=row_num, column=3, value=billing.patient.card_number)
        worksheet.cell(row=row_num, column=4, value=billing.billing_number)
        worksheet.cell(row=row_num, column=5, value=billing.get_billing_type_display())
        worksheet.cell(row=row_num, column=6, value=payment.get_method_display())
        worksheet.cell(row=row_num, column=7, value=float(payment.amount))
        worksheet.cell(row=row_num, column=8, value=reference)
        worksheet.cell(row=row_num, column=9, value=created.strftime('%d %b %Y'))
        worksheet.cell(row=row_num, column=10, value=created.strftime('%H:%M'))
        worksheet.cell(row=row_num, column=11, value=str(payment.received_by) if payment.received_by else "System")

    if payments:
        summary_row = len(payments) + 3
        worksheet.cell(row=summary_row, column=1, value="SUMMARY").font = Font(bold=True, size=12)
        worksheet.cell(row=summary_row + 1, column=1, value="Total Payments:")
        worksheet.cell(row=summary_row + 1, column=2, value=len(payments))

        ids = [p.id for p in payments]
        totals = BillPaymentModel.objects.filter(id__in=ids).values('method').annotate(total=Sum('amount'))
        by_method = {row['method']: row['total'] for row in totals}
        offset = 2
        for method, label in BillPaymentModel._meta.get_field('method').choices:
            worksheet.cell(row=summary_row + offset, column=1, value=f"{label.title()}:")
            worksheet.cell(row=summary_row + offset, column=2, value=float(by_method.get(method) or 0))
            offset += 1
        worksheet.cell(row=summary_row + offset, column=1, value="Grand Total:").font = Font(bold=True)
        worksheet.cell(row=summary_row + offset, column=2, value=float(sum(p.amount for p in payments)))

    column_widths = [8, 25, 15, 20, 15, 12, 15, 25, 12, 10, 20]
    for col_num, width in enumerate(column_widths, 1):
        column_letter = openpyxl.utils.get_column_letter(col_num)
        worksheet.column_dimensions[column_letter].width = width

    if start_date and end_date:
        filename = f"Payments_{start_date}_to_{end_date}.xlsx"
    else:
        filename = f"Payments_{now().date().strftime('%Y-%m-%d')}.xlsx"

    response = HttpResponse(
        content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
    )
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    workbook.save(response)
    logger.info(f"Payments export {filename} ({len(payments)} rows) by {request.user}")
    return response
