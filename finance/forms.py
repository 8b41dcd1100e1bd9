from django import forms
from django.core.exceptions import ValidationError

from admin_site.model_info import PAYMENT_METHOD
from finance.models import InsuranceProviderModel
from service.models import Service


class BillPaymentForm(forms.Form):
    """Method-specific details (bank, insurance) are checked by finance.ledger"""
    method = forms.ChoiceField(choices=PAYMENT_METHOD)
    amount = forms.DecimalField(max_digits=12, decimal_places=2)
    bank_name = forms.CharField(max_length=100, required=False)
    trans_number = forms.CharField(max_length=100, required=False)
    insurance = forms.CharField(max_length=20, required=False, help_text="Insurance provider code")
    notes = forms.CharField(required=False, widget=forms.Textarea)


class BillingServiceForm(forms.Form):
    service = forms.ModelChoiceField(queryset=Service.objects.filter(is_active=True))
    quantity = forms.IntegerField(min_value=1, initial=1, required=False)
    unit_price = forms.DecimalField(max_digits=12, decimal_places=2, required=False)

    def clean_quantity(self):
        return self.cleaned_data.get('quantity') or 1

    def clean_unit_price(self):
        price = self.cleaned_data.get('unit_price')
        if price is not None and price < 0:
            raise ValidationError("Unit price cannot be negative.")
        return price


class InsuranceProviderForm(forms.ModelForm):
    class Meta:
        model = InsuranceProviderModel
        fields = ['name', 'code', 'description', 'status']

    def clean_code(self):
        code = (self.cleaned_data.get('code') or '').strip().upper()
        qs = InsuranceProviderModel.objects.filter(code=code)
        if self.instance.pk:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise ValidationError(f"Code '{code}' already exists.")
        return code


class PaymentReportForm(forms.Form):
    start_date = forms.DateField(required=False)
    end_date = forms.DateField(required=False)

    def clean(self):
        cleaned = super().clean()
        start, end = cleaned.get('start_date'), cleaned.get('end_date')
        if start and end and start > end:
            raise ValidationError("Start date cannot be after end date.")
        return cleaned
