GENDER = (
    ('male', 'MALE'), ('female', 'FEMALE')
)

CARD_STATUS = (
    ('inactive', 'INACTIVE'), ('active', 'ACTIVE'), ('expired', 'EXPIRED')
)

PRIORITY = (
    (1, 'URGENT'), (2, 'PRIORITY'), (3, 'NORMAL')
)

PRE_REGISTRATION_STATUS = (
    ('pending', 'PENDING'), ('completed', 'COMPLETED'), ('cancelled', 'CANCELLED')
)

QUEUE_TYPE = (
    ('consultation', 'CONSULTATION'), ('dental', 'DENTAL'), ('emergency', 'EMERGENCY'), ('follow_up', 'FOLLOW UP')
)

SERVICE_CATEGORY = (
    ('consultation', 'CONSULTATION'), ('lab', 'LABORATORY'), ('radiology', 'RADIOLOGY'),
    ('medication', 'MEDICATION'), ('card', 'CARD'), ('procedure', 'PROCEDURE'),
    ('nurse', 'NURSE'), ('emergency', 'EMERGENCY'), ('other', 'OTHER')
)

BILLING_TYPE = (
    ('card', 'CARD'), ('consultation', 'CONSULTATION'), ('lab', 'LABORATORY'), ('radiology', 'RADIOLOGY'),
    ('pharmacy', 'PHARMACY'), ('emergency', 'EMERGENCY'), ('other', 'OTHER')
)

BILLING_STATUS = (
    ('pending', 'PENDING'), ('partially_paid', 'PARTIALLY PAID'), ('paid', 'PAID'),
    ('emergency_pending', 'EMERGENCY PENDING')
    # always maintain "pending" as the first item in the tuple
)

PAYMENT_METHOD = (
    ('cash', 'CASH'), ('bank', 'BANK'), ('insurance', 'INSURANCE'), ('charity', 'CHARITY')
)

INVESTIGATION_ORDER_STATUS = (
    ('unpaid', 'UNPAID'), ('queued', 'QUEUED'), ('in_progress', 'IN PROGRESS'),
    ('completed', 'COMPLETED'), ('cancelled', 'CANCELLED')
)

DRUG_ORDER_STATUS = (
    ('unpaid', 'UNPAID'), ('queued', 'QUEUED'), ('dispensed', 'DISPENSED'), ('cancelled', 'CANCELLED')
)
