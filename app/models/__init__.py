from app.models.user import User
from app.models.course import Course
from app.models.lesson import Lesson, Progress
from app.models.learning_path import LearningPath, LearningPathCourse
from app.models.coupon import Coupon, DiscountType
from app.models.purchase import Purchase
from app.models.payment import Payment
from app.models.enrollment import Enrollment
from app.models.subscription import (
    Subscription,
    SubscriptionInterval,
    SubscriptionPayment,
    SubscriptionPlan,
    SubscriptionStatus,
    SubscriptionTier,
)
from app.models.certificate import AchievementType, Certificate
from app.models.webhook_event import WebhookEvent
from app.models.activity_log import ActivityLog
from app.models.notifications import Notification

# add ALL models here
