from django.contrib.auth.models import User
from django.db import models
from admin_site.model_info import *


class ActivityLogModel(models.Model):
    log = models.TextField()
    category = models.CharField(max_length=50)
    sub_category = models.CharField(max_length=50)
    keywords = models.CharField(max_length=200, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True, blank=True)
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)

    class Meta:
        ordering = ['-id']

    def __str__(self):
        return f"{self.category}/{self.sub_category} - {self.created_at:%Y-%m-%d %H:%M}"
