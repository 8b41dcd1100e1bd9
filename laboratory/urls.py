from django.urls import path
from laboratory.views import *

urlpatterns = [
    path('queue', lab_queue_ajax, name='lab_queue_ajax'),
    path('order/<int:pk>', lab_order_detail_ajax, name='lab_order_detail_ajax'),
    path('order/<int:pk>/accept', lab_order_accept_ajax, name='lab_order_accept_ajax'),
    path('order/<int:pk>/complete', lab_order_complete_ajax, name='lab_order_complete_ajax'),
]
