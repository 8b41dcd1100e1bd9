"""
Doctor queue: workload balancing and per-doctor ordering.

Workload is derived from visits on every read, never stored: a doctor's
workload is the number of their visits waiting to be seen plus those
waiting for results review. Every function here is a plain read, safe for
dashboards to poll.
"""
from django.db.models import Count, F, Q

from consultation.models import ConsultantModel, VisitModel, get_consultation_setting

WORKLOAD_STATES = VisitModel.NEW_PATIENT_STATES + VisitModel.RESULTS_STATES


def workload(doctor):
    return VisitModel.objects.filter(consultant=doctor, status__in=WORKLOAD_STATES).count()


def workloads(doctors=None):
    """{doctor id: workload} in one query; doctors with no work are absent."""
    visits = VisitModel.objects.filter(consultant__isnull=False, status__in=WORKLOAD_STATES)
    if doctors is not None:
        visits = visits.filter(consultant__in=doctors)
    rows = visits.values('consultant').annotate(total=Count('id'))
    return {row['consultant']: row['total'] for row in rows}


def recommend_doctor(candidates=None):
    """Least busy doctor, lowest id on a tie; None when there are no candidates."""
    if candidates is None:
        candidates = ConsultantModel.objects.filter(is_available=True)
    candidates = list(candidates)
    if not candidates:
        return None
    loads = workloads(candidates)
    return min(candidates, key=lambda doctor: (loads.get(doctor.pk, 0), doctor.pk))


def queue_for(doctor):
    """The doctor's open visits: emergencies first, then by priority (unset last), then arrival."""
    return (
        VisitModel.objects
        .filter(consultant=doctor)
        .exclude(status__in=VisitModel.TERMINAL_STATES)
        .select_related('patient')
        .order_by('-is_emergency', F('priority').asc(nulls_last=True), 'created_at', 'id')
    )


def doctors_queue_status(doctors=None):
    """Per-doctor queue counts, least busy first, with clinic totals."""
    if doctors is None:
        doctors = ConsultantModel.objects.filter(is_available=True)

    doctors = doctors.select_related('user').annotate(
        new_patients=Count('visits', filter=Q(visits__status__in=VisitModel.NEW_PATIENT_STATES)),
        in_review=Count('visits', filter=Q(visits__status=VisitModel.UNDER_DOCTOR_REVIEW)),
        awaiting_results=Count('visits', filter=Q(visits__status__in=VisitModel.RESULTS_STATES)),
    )

    rows = []
    for doctor in doctors:
        rows.append({
            'id': doctor.pk,
            'name': str(doctor),
            'specialization': doctor.specialization,
            'new_patients': doctor.new_patients,
            'in_review': doctor.in_review,
            'awaiting_results': doctor.awaiting_results,
            'workload': doctor.new_patients + doctor.awaiting_results,
        })
    rows.sort(key=lambda row: (row['workload'], row['id']))

    total_workload = sum(row['workload'] for row in rows)
    return {
        'doctors': rows,
        'totals': {
            'doctors': len(rows),
            'new_patients': sum(row['new_patients'] for row in rows),
            'in_review': sum(row['in_review'] for row in rows),
            'awaiting_results': sum(row['awaiting_results'] for row in rows),
            'workload': total_workload,
        },
        'average_workload': round(total_workload / len(rows), 2) if rows else 0,
        'recommended_doctor_id': rows[0]['id'] if rows else None,
        'refresh_seconds': get_consultation_setting().queue_refresh_seconds,
    }
