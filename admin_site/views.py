import logging

from django.contrib.auth.decorators import login_required, permission_required
from django.db.models import Count, Q
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_GET

from admin_site.models import ActivityLogModel
from admin_site.utils import workflow_json_view
from consultation.models import VisitModel
from consultation.queue import doctors_queue_status
from finance.models import BillingModel
from patient.models import PatientModel, PreRegistrationModel

logger = logging.getLogger(__name__)


@require_GET
@login_required
@workflow_json_view
def dashboard(request):
    """
    Front-desk overview: today's visits by status, open billings, card
    states, the pre-registration backlog and the doctors' queues.
    """
    today = timezone.localdate()
    visits_today = VisitModel.objects.filter(created_at__date=today)
    by_status = {row['status']: row['total'] for row in visits_today.values('status').annotate(total=Count('id'))}

    cards = PatientModel.objects.aggregate(
        active=Count('id', filter=Q(card_status=PatientModel.CARD_ACTIVE)),
        inactive=Count('id', filter=Q(card_status=PatientModel.CARD_INACTIVE)),
        expired=Count('id', filter=Q(card_status=PatientModel.CARD_EXPIRED)),
    )

    context = {
        'date': today.isoformat(),
        'visits': {
            'total': sum(by_status.values()),
            'emergency': visits_today.filter(is_emergency=True).count(),
            'by_status': by_status,
        },
        'open_billings': BillingModel.objects.filter(settled_at__isnull=True).count(),
        'pending_emergency_billings': BillingModel.objects.filter(status=BillingModel.EMERGENCY_PENDING).count(),
        'cards': cards,
        'pre_registrations_pending': PreRegistrationModel.objects.filter(
            status=PreRegistrationModel.PENDING).count(),
        'queues': doctors_queue_status(),
    }
    return JsonResponse({'success': True, **context})


@require_GET
@login_required
@permission_required('admin_site.view_activitylogmodel', raise_exception=True)
def activity_log_ajax(request):
    """Latest activity, optionally filtered by ``category`` and ``sub_category``"""
    logs = ActivityLogModel.objects.select_related('user')
    if request.GET.get('category'):
        logs = logs.filter(category=request.GET['category'])
    if request.GET.get('sub_category'):
        logs = logs.filter(sub_category=request.GET['sub_category'])

    try:
        limit = min(int(request.GET.get('limit', 50)), 200)
    except ValueError:
        limit = 50

    return JsonResponse({
        'success': True,
        'logs': [
            {
                'id': log.id,
                'log': log.log,
                'category': log.category,
                'sub_category': log.sub_category,
                'keywords': log.keywords,
                'user': log.user.username if log.user else None,
                'created_at': log.created_at.isoformat(),
            }
            for log in logs[:limit]
        ]
    })


def custom_404_view(request, exception):
    """
    Handles Page Not Found errors (404).
    """
    return JsonResponse({'success': False, 'error': 'Not found', 'code': 'not_found'}, status=404)


def custom_500_view(request):
    """
    Handles Server Errors (500).
    Django calls this view when there's a server-side crash.
    """
    return JsonResponse({'success': False, 'error': 'Internal server error', 'code': 'server_error'}, status=500)


def custom_403_view(request, exception):
    """
    Handles Permission Denied errors (403).
    This is triggered when a user tries to access a resource they don't have permission for.
    """
    return JsonResponse({'success': False, 'error': 'Permission denied', 'code': 'permission_denied'}, status=403)
