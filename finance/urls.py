from django.urls import path
from finance.views import *

urlpatterns = [
    path('billing/<int:pk>', billing_detail_ajax, name='billing_detail_ajax'),
    path('billing/<int:pk>/services/add', billing_add_service_ajax, name='billing_add_service_ajax'),
    path('billing/<int:pk>/services/<int:line_id>/remove', billing_remove_service_ajax,
         name='billing_remove_service_ajax'),
    path('billing/<int:pk>/pay', record_payment_ajax, name='record_payment_ajax'),
    path('billing/<int:pk>/acknowledge', emergency_acknowledge_ajax, name='emergency_acknowledge_ajax'),
    path('patient/<int:patient_id>/billings', patient_billings_ajax, name='patient_billings_ajax'),

    path('insurance-provider/create', insurance_provider_create_ajax, name='insurance_provider_create_ajax'),

    path('payments/export/excel', export_payments_excel, name='export_payments_excel'),
]
