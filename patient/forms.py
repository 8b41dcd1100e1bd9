import re
from datetime import date

from django import forms
from django.core.exceptions import ValidationError
from patient.models import *


class PatientForm(forms.ModelForm):
    """Reception registration form; the card number is generated on save"""

    class Meta:
        model = PatientModel
        fields = ['first_name', 'middle_name', 'last_name', 'date_of_birth', 'gender', 'address', 'mobile', 'email']

    def clean_first_name(self):
        name = (self.cleaned_data.get('first_name') or '').strip()
        if len(name) < 2:
            raise ValidationError("First name must be at least 2 characters long.")
        return name.title()

    def clean_last_name(self):
        name = (self.cleaned_data.get('last_name') or '').strip()
        if len(name) < 2:
            raise ValidationError("Last name must be at least 2 characters long.")
        return name.title()

    def clean_mobile(self):
        mobile = (self.cleaned_data.get('mobile') or '').strip()
        if mobile and not re.match(r'^\+?[0-9\s\-]{7,20}$', mobile):
            raise ValidationError("Enter a valid phone number.")
        return mobile

    def clean_date_of_birth(self):
        dob = self.cleaned_data.get('date_of_birth')
        if dob and dob > date.today():
            raise ValidationError("Date of birth cannot be in the future.")
        return dob


class PreRegistrationForm(forms.Form):
    """Duplicate pending entries are reported by patient.preregistration, not here"""
    full_name = forms.CharField(max_length=200)
    phone = forms.CharField(max_length=20)
    priority = forms.TypedChoiceField(choices=PRIORITY, coerce=int, required=False, empty_value=3)
    patient = forms.ModelChoiceField(queryset=PatientModel.objects.all(), required=False)
    notes = forms.CharField(required=False, widget=forms.Textarea)

    def clean_phone(self):
        phone = (self.cleaned_data.get('phone') or '').strip()
        if not re.match(r'^\+?[0-9\s\-]{7,20}$', phone):
            raise ValidationError("Enter a valid phone number.")
        return phone


class PatientSettingForm(forms.ModelForm):

    class Meta:
        model = PatientSettingModel
        fields = ['card_validity_days', 'card_registration_service_code', 'card_activation_service_code',
                  'patient_id_prefix']

    def clean_card_validity_days(self):
        days = self.cleaned_data.get('card_validity_days')
        if not days or days < 1:
            raise ValidationError("Card validity must be at least one day.")
        return days
