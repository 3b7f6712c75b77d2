from app.models.subscription import SubscriptionStatus

ALLOWED_TRANSITIONS = {
    SubscriptionStatus.pending: [SubscriptionStatus.active, SubscriptionStatus.expired, SubscriptionStatus.cancelled],
    SubscriptionStatus.active: [SubscriptionStatus.cancelled, SubscriptionStatus.past_due, SubscriptionStatus.expired],
    SubscriptionStatus.cancelled: [SubscriptionStatus.expired, SubscriptionStatus.active],
    SubscriptionStatus.past_due: [SubscriptionStatus.active, SubscriptionStatus.cancelled, SubscriptionStatus.expired],
    SubscriptionStatus.expired: [SubscriptionStatus.active],
}

# statuses that still count against "one current subscription per buyer"
NON_TERMINAL_STATUSES = [
    SubscriptionStatus.pending,
    SubscriptionStatus.active,
    SubscriptionStatus.cancelled,
    SubscriptionStatus.past_due,
]

# statuses that keep entitlements until current_period_end
ENTITLED_STATUSES = [
    SubscriptionStatus.active,
    SubscriptionStatus.cancelled,
    SubscriptionStatus.past_due,
]
