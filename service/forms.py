import re

from django import forms
from django.core.exceptions import ValidationError
from .models import Service


class ServiceForm(forms.ModelForm):
    class Meta:
        model = Service
        fields = ['code', 'name', 'category', 'description', 'price', 'has_results', 'is_active']

    def clean_code(self):
        code = (self.cleaned_data.get('code') or '').upper().strip()
        if not re.match(r'^[A-Z0-9\-]+$', code):
            raise ValidationError("Code must contain only letters, numbers and hyphens.")

        qs = Service.objects.filter(code=code)
        if self.instance.pk:
            qs = qs.exclude(pk=self.instance.pk)

        if qs.exists():
            raise ValidationError(f"Code '{code}' already exists.")
        return code

    def clean_price(self):
        price = self.cleaned_data.get('price')
        if price is not None and price < 0:
            raise ValidationError("Price cannot be negative.")
        return price
