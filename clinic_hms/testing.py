"""
Shared fixtures for the app test suites: staff users, doctors, the
service catalog entries the workflow looks up by code, and patients
with an active card.
"""
from decimal import Decimal

from django.contrib.auth.models import User, Permission

from consultation.models import ConsultantModel
from finance.ledger import record_payment, outstanding_amount
from patient.card import register_patient
from service.models import Service

CATALOG = [
    # code, name, category, price
    ('CARD-REG', 'Card Registration', 'card', '2000.00'),
    ('CARD-ACT', 'Card Activation', 'card', '1000.00'),
    ('CONSULT', 'General Consultation', 'consultation', '5000.00'),
    ('FBC', 'Full Blood Count', 'lab', '3000.00'),
    ('MP', 'Malaria Parasite', 'lab', '1500.00'),
    ('XRAY-CHEST', 'Chest X-Ray', 'radiology', '8000.00'),
    ('PCM', 'Paracetamol 500mg', 'medication', '200.00'),
    ('ER-DRIP', 'IV Infusion', 'emergency', '4500.00'),
]


def create_user(username='staff', permissions=(), **extra):
    """A staff user holding ``permissions`` given as 'app_label.codename'."""
    user = User.objects.create_user(username=username, password='testpass123', **extra)
    for perm in permissions:
        app_label, codename = perm.split('.')
        user.user_permissions.add(
            Permission.objects.get(content_type__app_label=app_label, codename=codename)
        )
    return user


def create_consultant(username='doctor', first_name='Ada', last_name='Obi', **extra):
    user = User.objects.create_user(username=username, password='testpass123',
                                    first_name=first_name, last_name=last_name)
    return ConsultantModel.objects.create(user=user, **extra)


def create_catalog():
    """Catalog services keyed by code."""
    return {
        code: Service.objects.create(code=code, name=name, category=category, price=Decimal(price))
        for code, name, category, price in CATALOG
    }


def create_patient(first_name='John', last_name='Doe', mobile='08030000001', actor=None, activate=True):
    """Register a patient and, unless ``activate`` is false, pay the card billing."""
    patient, billing = register_patient(
        {'first_name': first_name, 'last_name': last_name, 'gender': 'male', 'mobile': mobile}, actor=actor
    )
    if activate:
        record_payment(billing, 'cash', billing.total_amount, actor=actor)
        patient.refresh_from_db()
    return patient


def pay_in_full(billing, actor=None):
    return record_payment(billing, 'cash', outstanding_amount(billing), actor=actor)
