from enum import Enum


class CommerceEvent(str, Enum):
    PURCHASE_CONFIRMED = "purchase_confirmed"
    ENROLLMENT_GRANTED = "enrollment_granted"
    PURCHASE_FAILED = "purchase_failed"
    FULFILLMENT_FAILED = "fulfillment_failed"

    SUBSCRIPTION_ACTIVATED = "subscription_activated"

    CERTIFICATE_ISSUED = "certificate_issued"
