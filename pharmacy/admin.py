from django.contrib import admin
from pharmacy.models import DrugOrderModel

admin.site.register(DrugOrderModel)
