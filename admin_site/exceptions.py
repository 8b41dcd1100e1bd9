"""
Errors raised by the clinic workflow services.

Every business failure is a WorkflowError carrying a machine code, an
operator-facing message and the context a front desk needs to resolve it
(the billing to pay, the amount outstanding, the visit's current status).
Views turn them into JSON through admin_site.utils.workflow_json_view.
"""
from decimal import Decimal


class WorkflowError(Exception):
    code = 'workflow_error'
    http_status = 400
    default_message = 'The request could not be completed.'

    def __init__(self, message=None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def as_dict(self):
        data = {'success': False, 'error': self.message, 'code': self.code}
        for key, value in self.context.items():
            if isinstance(value, Decimal):
                value = str(value)
            data[key] = value
        return data


class BillingNotSettled(WorkflowError):
    code = 'billing_not_settled'
    http_status = 402
    default_message = 'The billing for this step has not been paid.'


class VisitTerminal(WorkflowError):
    code = 'visit_terminal'
    http_status = 409
    default_message = 'This visit is already completed or cancelled.'


class CardInactiveOrExpired(WorkflowError):
    code = 'card_inactive_or_expired'
    http_status = 403
    default_message = 'Patient card is not active. Activate the card before creating a visit.'


class DuplicatePending(WorkflowError):
    code = 'duplicate_pending'
    http_status = 409
    default_message = 'A pending pre-registration already exists for this patient.'


class AlreadyAcknowledged(WorkflowError):
    code = 'already_acknowledged'
    http_status = 409
    default_message = 'Emergency payment has already been acknowledged.'


class BillingAlreadySettled(WorkflowError):
    code = 'billing_already_settled'
    http_status = 409
    default_message = 'This billing is settled and can no longer be changed.'


class InvalidPaymentMethodData(WorkflowError):
    code = 'invalid_payment_method_data'
    default_message = 'Payment details are incomplete for the selected method.'


class InvalidAmount(WorkflowError):
    code = 'invalid_amount'
    default_message = 'Payment amount must be greater than zero.'


class ConcurrentModification(WorkflowError):
    code = 'concurrent_modification'
    http_status = 409
    default_message = 'This visit was updated by someone else. Refresh and try again.'


class InvalidTransition(WorkflowError):
    code = 'invalid_transition'
    http_status = 409
    default_message = 'This action is not allowed at the current stage of the visit.'


class OrdersOutstanding(WorkflowError):
    code = 'orders_outstanding'
    http_status = 409
    default_message = 'Some investigation results are still pending.'


class NoDoctorAvailable(WorkflowError):
    code = 'no_doctor_available'
    http_status = 409
    default_message = 'No doctor is available to take this patient.'


class EntryNotPending(WorkflowError):
    code = 'entry_not_pending'
    http_status = 409
    default_message = 'This pre-registration entry has already been processed or cancelled.'


class UnsupportedBillingOperation(WorkflowError):
    code = 'unsupported_billing_operation'
    default_message = 'This operation is not supported for this billing.'


class ServiceNotConfigured(WorkflowError):
    code = 'service_not_configured'
    http_status = 500
    default_message = 'A required service is missing from the service catalog.'


class Unavailable(Exception):
    """The database could not be reached after the configured retries."""
    code = 'unavailable'
    http_status = 503

    def __init__(self, message='Service temporarily unavailable. Please try again.'):
        self.message = message
        super().__init__(message)

    def as_dict(self):
        return {'success': False, 'error': self.message, 'code': self.code}
