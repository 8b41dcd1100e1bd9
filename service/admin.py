from django.contrib import admin
from service.models import Service

admin.site.register(Service)
