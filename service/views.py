import logging

from django.contrib.auth.decorators import login_required, permission_required
from django.http import JsonResponse
from django.views.decorators.http import require_POST, require_GET

from admin_site.utils import form_error_response, request_data
from .forms import ServiceForm
from .models import Service

logger = logging.getLogger(__name__)


def serialize_service(service):
    return {
        'id': service.id,
        'code': service.code,
        'name': service.name,
        'category': service.category,
        'price': str(service.price),
        'has_results': service.has_results,
        'is_active': service.is_active,
    }


@require_GET
@login_required
def service_list_ajax(request):
    """Active services, optionally filtered by category"""
    services = Service.objects.filter(is_active=True)
    category = request.GET.get('category', '').strip()
    if category:
        services = services.filter(category=category)

    return JsonResponse({
        'success': True,
        'services': [serialize_service(s) for s in services]
    })


@require_POST
@login_required
@permission_required('service.add_service', raise_exception=True)
def service_create_ajax(request):
    form = ServiceForm(request_data(request))
    if not form.is_valid():
        return form_error_response(form)

    service = form.save(commit=False)
    service.created_by = request.user
    service.save()
    logger.info(f"Service {service.code} created by {request.user}")
    return JsonResponse({'success': True, 'service': serialize_service(service)}, status=201)
