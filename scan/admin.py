from django.contrib import admin
from scan.models import ScanOrderModel


admin.site.register(ScanOrderModel)
