from django.contrib import admin
from patient.models import PatientModel, PatientSettingModel, CardActivationModel, PreRegistrationModel

admin.site.register(PatientModel)
admin.site.register(PatientSettingModel)
admin.site.register(CardActivationModel)
admin.site.register(PreRegistrationModel)
