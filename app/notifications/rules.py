from app.notifications.events import CommerceEvent
from app.notifications.channels import Channel


NOTIFICATION_RULES = {

    CommerceEvent.PURCHASE_CONFIRMED: {
        Channel.EMAIL_USER: True,
        Channel.INAPP_ADMIN: True,
        Channel.EMAIL_ADMIN: True,
    },

    CommerceEvent.ENROLLMENT_GRANTED: {
        Channel.EMAIL_USER: True,
    },

    CommerceEvent.PURCHASE_FAILED: {
        Channel.EMAIL_USER: True,
        Channel.INAPP_ADMIN: True,
    },

    CommerceEvent.FULFILLMENT_FAILED: {
        Channel.INAPP_ADMIN: True,
        Channel.EMAIL_ADMIN: True,
    },

    CommerceEvent.SUBSCRIPTION_ACTIVATED: {
        Channel.EMAIL_USER: True,
        Channel.INAPP_ADMIN: True,
    },

    CommerceEvent.CERTIFICATE_ISSUED: {
        Channel.EMAIL_USER: True,
    },

}
