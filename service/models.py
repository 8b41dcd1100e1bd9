from django.db import models
from django.contrib.auth.models import User

from admin_site.exceptions import ServiceNotConfigured
from admin_site.model_info import SERVICE_CATEGORY


class Service(models.Model):
    """Billable services offered by the clinic, looked up by code"""
    code = models.CharField(max_length=30, unique=True)
    name = models.CharField(max_length=150)
    category = models.CharField(max_length=20, choices=SERVICE_CATEGORY, default='other')
    description = models.TextField(blank=True, null=True)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    has_results = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='service_created_by')

    class Meta:
        ordering = ['category', 'name']

    def __str__(self):
        return f"{self.get_category_display()} - {self.name}"

    def save(self, *args, **kwargs):
        self.code = (self.code or '').strip().upper()
        super().save(*args, **kwargs)


def get_service_by_code(code):
    """Active catalog service for ``code``; raises ServiceNotConfigured when missing."""
    service = Service.objects.filter(code=(code or '').upper(), is_active=True).first()
    if service is None:
        raise ServiceNotConfigured(f"Service '{code}' is not configured in the service catalog.", service_code=code)
    return service
