from django.urls import path
from admin_site.views import *

urlpatterns = [
    path('', dashboard, name='admin_dashboard'),
    path('activity-log', activity_log_ajax, name='activity_log_ajax'),
]
