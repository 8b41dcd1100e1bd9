from django.urls import path
from scan.views import *

urlpatterns = [
    path('queue', scan_queue_ajax, name='scan_queue_ajax'),
    path('order/<int:pk>', scan_order_detail_ajax, name='scan_order_detail_ajax'),
    path('order/<int:pk>/accept', scan_order_accept_ajax, name='scan_order_accept_ajax'),
    path('order/<int:pk>/complete', scan_order_complete_ajax, name='scan_order_complete_ajax'),
]
