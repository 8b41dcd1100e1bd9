from django.contrib import admin
from admin_site.models import ActivityLogModel

admin.site.register(ActivityLogModel)
