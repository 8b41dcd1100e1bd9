from django.contrib import admin
from consultation.models import (
    ConsultantModel, VisitModel, VisitStatusHistoryModel, PatientVitalsModel, ConsultationSettingsModel
)

admin.site.register(ConsultantModel)
admin.site.register(VisitModel)
admin.site.register(VisitStatusHistoryModel)
admin.site.register(PatientVitalsModel)
admin.site.register(ConsultationSettingsModel)
