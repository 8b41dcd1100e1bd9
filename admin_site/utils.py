import json
import logging
import random
import time
from functools import wraps

from django.conf import settings
from django.db import IntegrityError, InterfaceError, OperationalError, transaction
from django.db.models import IntegerField, Max
from django.db.models.functions import Cast, Right
from django.http import JsonResponse
from django.utils.html import escape
from django.utils.timezone import now

from admin_site.exceptions import WorkflowError, Unavailable
from admin_site.models import ActivityLogModel

logger = logging.getLogger(__name__)


# Helper: display actor as "Dr. <name>" for consultants, else user full name/username, else "System"
def get_actor_display(user):
    if not user:
        return "System"
    full_name = user.get_full_name().strip()
    name = full_name or user.username or "System"
    if getattr(user, 'consultant_profile', None) is not None:
        return f"Dr. {name}"
    return name


def create_activity_log(user, log, category, sub_category, keywords=""):
    ActivityLogModel.objects.create(
        user=user,
        log=log,
        category=category,
        sub_category=sub_category,
        keywords=keywords
    )


def log_activity(user, colour, message, category, sub_category, keywords=""):
    """Write an HTML activity log entry. ``message`` is escaped by the caller where it holds user input."""
    log_html = f"""
        <div class='{colour} p-2' style='border-radius:5px;'>
            <p>
                <b>{escape(get_actor_display(user))}</b> {message}<br>
                <span class='float-end small'>{now().strftime("%Y-%m-%d %H:%M:%S")}</span>
            </p>
        </div>
        """
    create_activity_log(user, log_html, category, sub_category, keywords)


def with_storage_retry(func):
    """
    Retry a unit of work on transient database errors with a short jittered
    pause, then raise Unavailable. Business errors are never retried.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        max_retries = max(1, getattr(settings, 'STORAGE_RETRY_ATTEMPTS', 3))
        retry_count = 0
        while True:
            try:
                return func(*args, **kwargs)
            except (OperationalError, InterfaceError) as e:
                retry_count += 1
                logger.warning(f"Storage error in {func.__name__} (attempt {retry_count}/{max_retries}): {e}")
                if retry_count >= max_retries:
                    raise Unavailable() from e
                # Wait briefly before retry with some jitter
                time.sleep(0.01 + random.uniform(0, 0.02))
    return wrapper


def next_sequence_number(model, field, prefix, width):
    """Next ``prefix`` + zero-padded counter for ``field``, counting from the highest number issued."""
    last_data = model.objects.filter(**{f'{field}__startswith': prefix}).aggregate(
        max_id=Max(Cast(Right(field, width), IntegerField()))
    )
    last_number = last_data['max_id'] or 0
    return f"{prefix}{str(last_number + 1).zfill(width)}"


def save_with_sequence_number(instance, field, prefix, width, save, max_retries=5):
    """
    Save ``instance`` assigning a generated number to ``field`` when empty.
    Two requests can compute the same number; the unique index rejects the
    loser, which regenerates and tries again.
    """
    if getattr(instance, field):
        return save()

    retry_count = 0
    while True:
        setattr(instance, field, next_sequence_number(type(instance), field, prefix, width))
        try:
            with transaction.atomic():
                return save()
        except IntegrityError:
            retry_count += 1
            if retry_count >= max_retries:
                raise
            setattr(instance, field, None)
            if instance._state.adding:
                instance.pk = None
            time.sleep(0.01 + random.uniform(0, 0.02))


def workflow_json_view(view_func):
    """Run a JSON view with storage retry and translate workflow errors into JSON responses."""
    retried = with_storage_retry(view_func)

    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        try:
            return retried(request, *args, **kwargs)
        except WorkflowError as e:
            logger.info(f"{view_func.__name__} rejected: {e.code} - {e.message}")
            return JsonResponse(e.as_dict(), status=e.http_status)
        except Unavailable as e:
            logger.error(f"{view_func.__name__} unavailable: {e.message}")
            return JsonResponse(e.as_dict(), status=e.http_status)
    return wrapper


def request_data(request):
    """Return the request payload from a JSON body or form-encoded POST."""
    if request.content_type == 'application/json':
        try:
            data = json.loads(request.body or b'{}')
        except json.JSONDecodeError:
            return {}
        return data if isinstance(data, dict) else {}
    return request.POST.dict()


def form_error_response(form, message='Please correct the errors below.'):
    return JsonResponse({
        'success': False,
        'error': message,
        'code': 'validation_error',
        'errors': {field: [str(e) for e in errs] for field, errs in form.errors.items()},
    }, status=400)
