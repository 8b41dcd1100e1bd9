from django.contrib import admin
from laboratory.models import LabTestOrderModel


admin.site.register(LabTestOrderModel)
