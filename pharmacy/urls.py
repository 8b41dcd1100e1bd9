from django.urls import path
from pharmacy.views import *

urlpatterns = [
    path('queue', pharmacy_queue_ajax, name='pharmacy_queue_ajax'),
    path('visit/<int:visit_id>/dispense', dispense_ajax, name='dispense_ajax'),
]
