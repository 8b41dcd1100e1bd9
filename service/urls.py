from django.urls import path
from service.views import *

urlpatterns = [
    path('services', service_list_ajax, name='service_list_ajax'),
    path('services/create', service_create_ajax, name='service_create_ajax'),
]
