from django import forms
from django.core.exceptions import ValidationError

from admin_site.model_info import PRIORITY, QUEUE_TYPE
from consultation.models import ConsultantModel, PatientVitalsModel
from patient.models import PatientModel


class VisitCreateForm(forms.Form):
    patient = forms.ModelChoiceField(queryset=PatientModel.objects.all())
    is_emergency = forms.BooleanField(required=False)
    queue_type = forms.ChoiceField(choices=QUEUE_TYPE, required=False)
    priority = forms.TypedChoiceField(choices=PRIORITY, coerce=int, required=False, empty_value=None)
    consultant = forms.ModelChoiceField(queryset=ConsultantModel.objects.all(), required=False)
    chief_complaint = forms.CharField(required=False, widget=forms.Textarea)

    def clean_queue_type(self):
        return self.cleaned_data.get('queue_type') or 'consultation'


class PatientVitalsForm(forms.ModelForm):
    """Vitals taken by nurses before consultation"""

    class Meta:
        model = PatientVitalsModel
        fields = [
            'temperature', 'blood_pressure_systolic', 'blood_pressure_diastolic', 'pulse_rate',
            'respiratory_rate', 'oxygen_saturation', 'height', 'weight', 'chief_complaint', 'notes'
        ]

    def clean_temperature(self):
        temperature = self.cleaned_data.get('temperature')
        if temperature is not None and not 25 <= temperature <= 45:
            raise ValidationError("Temperature must be between 25°C and 45°C.")
        return temperature

    def clean_oxygen_saturation(self):
        spo2 = self.cleaned_data.get('oxygen_saturation')
        if spo2 is not None and not 0 <= spo2 <= 100:
            raise ValidationError("Oxygen saturation must be between 0 and 100.")
        return spo2

    def clean(self):
        cleaned = super().clean()
        systolic = cleaned.get('blood_pressure_systolic')
        diastolic = cleaned.get('blood_pressure_diastolic')
        if (systolic is None) != (diastolic is None):
            raise ValidationError("Provide both systolic and diastolic blood pressure.")
        if systolic is not None and diastolic is not None and systolic <= diastolic:
            raise ValidationError("Systolic pressure must be higher than diastolic pressure.")
        return cleaned
