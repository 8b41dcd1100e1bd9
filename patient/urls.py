from django.urls import path
from patient.views import *

urlpatterns = [
    path('register', register_patient_ajax, name='register_patient_ajax'),
    path('search', patient_search_ajax, name='patient_search_ajax'),
    path('<int:pk>/card', patient_card_status_ajax, name='patient_card_status_ajax'),
    path('<int:pk>/card/activate', request_card_activation_ajax, name='request_card_activation_ajax'),

    path('pre-registration', pre_registration_list_ajax, name='pre_registration_list_ajax'),
    path('pre-registration/add', pre_registration_add_ajax, name='pre_registration_add_ajax'),
    path('pre-registration/<int:pk>/process', pre_registration_process_ajax, name='pre_registration_process_ajax'),
    path('pre-registration/<int:pk>/cancel', pre_registration_cancel_ajax, name='pre_registration_cancel_ajax'),

    path('setting/update', patient_setting_update_ajax, name='patient_setting_update_ajax'),
]
