from django.urls import path
from consultation.views import *

urlpatterns = [
    # -------------------------
    # Visits
    # -------------------------
    path('visit/create', create_visit_ajax, name='create_visit_ajax'),
    path('visit/<int:pk>', visit_detail_ajax, name='visit_detail_ajax'),
    path('visit/<int:pk>/vitals', record_vitals_ajax, name='record_vitals_ajax'),
    path('visit/<int:pk>/start-review', start_review_ajax, name='start_review_ajax'),
    path('visit/<int:pk>/order-investigations', order_investigations_ajax, name='order_investigations_ajax'),
    path('visit/<int:pk>/review-results', review_results_ajax, name='review_results_ajax'),
    path('visit/<int:pk>/prescribe', prescribe_ajax, name='prescribe_ajax'),
    path('visit/<int:pk>/complete', complete_visit_ajax, name='complete_visit_ajax'),
    path('visit/<int:pk>/cancel', cancel_visit_ajax, name='cancel_visit_ajax'),

    # -------------------------
    # Doctor queues
    # -------------------------
    path('queue/my', doctor_queue_ajax, name='my_doctor_queue_ajax'),
    path('queue/doctor/<int:consultant_id>', doctor_queue_ajax, name='doctor_queue_ajax'),
    path('queue/status', doctors_queue_status_ajax, name='doctors_queue_status_ajax'),
    path('queue/recommend', recommend_doctor_ajax, name='recommend_doctor_ajax'),
]
