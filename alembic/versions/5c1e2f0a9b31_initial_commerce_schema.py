"""initial commerce schema

Revision ID: 5c1e2f0a9b31
Revises:
Create Date: 2026-10-18 10:12:44.381205

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel

# revision identifiers, used by Alembic.
revision: str = '5c1e2f0a9b31'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

STR = sqlmodel.sql.sqltypes.AutoString

subscription_status = sa.Enum(
    "pending", "active", "cancelled", "past_due", "expired", name="subscriptionstatus"
)
subscription_interval = sa.Enum("monthly", "annual", name="subscriptioninterval")
subscription_tier = sa.Enum("starter", "professional", "founder", name="subscriptiontier")
discount_type = sa.Enum("FIXED", "PERCENTAGE", name="discounttype")
achievement_type = sa.Enum("course", "learning_path", name="achievementtype")
recipient_role = sa.Enum("admin", "customer", name="recipientrole")
notification_channel = sa.Enum("email", "system", name="notificationchannel")
notification_status = sa.Enum("sent", "failed", name="notificationstatus")


def upgrade() -> None:
    """Upgrade schema."""

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", STR(), nullable=True),
        sa.Column("email", STR(), nullable=False),
        sa.Column("role", STR(), nullable=False),
        sa.Column("can_login", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_user_email", "user", ["email"], unique=True)

    op.create_table(
        "course",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", STR(), nullable=False),
        sa.Column("slug", STR(), nullable=False),
        sa.Column("description", STR(), nullable=True),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("inventory", sa.Integer(), nullable=True),
        sa.Column("tier", STR(), nullable=False),
        sa.Column("is_published", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_course_slug", "course", ["slug"], unique=True)

    op.create_table(
        "lesson",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("course.id"), nullable=False),
        sa.Column("title", STR(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False),
    )
    op.create_index("ix_lesson_course_id", "lesson", ["course_id"])

    op.create_table(
        "progress",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("lesson_id", sa.Integer(), sa.ForeignKey("lesson.id"), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "lesson_id"),
    )
    op.create_index("ix_progress_user_id", "progress", ["user_id"])
    op.create_index("ix_progress_lesson_id", "progress", ["lesson_id"])

    op.create_table(
        "learning_path",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", STR(), nullable=False),
        sa.Column("slug", STR(), nullable=False),
        sa.Column("description", STR(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_learning_path_slug", "learning_path", ["slug"], unique=True)

    op.create_table(
        "learning_path_course",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("path_id", sa.Integer(), sa.ForeignKey("learning_path.id"), nullable=False),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("course.id"), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False),
        sa.UniqueConstraint("path_id", "course_id"),
    )
    op.create_index("ix_learning_path_course_path_id", "learning_path_course", ["path_id"])

    # ------------------------------------------------------------------
    # Purchases
    # ------------------------------------------------------------------
    op.create_table(
        "coupon",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", STR(), nullable=False),
        sa.Column("discount_type", discount_type, nullable=False),
        sa.Column("discount_amount", sa.Integer(), nullable=False),
        sa.Column("max_discount_amount", sa.Integer(), nullable=True),
        sa.Column("min_order_amount", sa.Integer(), nullable=True),
        sa.Column("start_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("used_count", sa.Integer(), nullable=False),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_coupon_code", "coupon", ["code"], unique=True)

    op.create_table(
        "purchase",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("course.id"), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency", STR(), nullable=False),
        sa.Column("status", STR(), nullable=False),
        sa.Column("provider", STR(), nullable=False),
        sa.Column("provider_ref", STR(), nullable=True),
        sa.Column("coupon_id", sa.Integer(), sa.ForeignKey("coupon.id"), nullable=True),
        sa.Column("price_original_cents", sa.Integer(), nullable=True),
        sa.Column("price_discount_cents", sa.Integer(), nullable=False),
        sa.Column("pricing_snapshot", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "course_id"),
    )
    op.create_index("ix_purchase_user_id", "purchase", ["user_id"])
    op.create_index("ix_purchase_course_id", "purchase", ["course_id"])
    op.create_index("ix_purchase_status", "purchase", ["status"])
    op.create_index("ix_purchase_provider_ref", "purchase", ["provider_ref"])

    op.create_table(
        "payment",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("purchase_id", sa.Integer(), sa.ForeignKey("purchase.id"), nullable=True),
        sa.Column("provider", STR(), nullable=False),
        sa.Column("provider_ref", STR(), nullable=True),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency", STR(), nullable=False),
        sa.Column("status", STR(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_payment_user_id", "payment", ["user_id"])
    op.create_index("ix_payment_purchase_id", "payment", ["purchase_id"])
    op.create_index("ix_payment_provider_ref", "payment", ["provider_ref"])

    op.create_table(
        "enrollment",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("course.id"), nullable=False),
        sa.Column("purchase_id", sa.Integer(), sa.ForeignKey("purchase.id"), nullable=True),
        sa.Column("granted_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "course_id"),
    )
    op.create_index("ix_enrollment_user_id", "enrollment", ["user_id"])
    op.create_index("ix_enrollment_course_id", "enrollment", ["course_id"])

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------
    op.create_table(
        "subscription_plan",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", STR(), nullable=False),
        sa.Column("description", STR(), nullable=True),
        sa.Column("tier", subscription_tier, nullable=False),
        sa.Column("price_monthly_cents", sa.Integer(), nullable=False),
        sa.Column("price_annual_cents", sa.Integer(), nullable=False),
        sa.Column("paypal_product_id", STR(), nullable=True),
        sa.Column("paypal_monthly_plan_id", STR(), nullable=True),
        sa.Column("paypal_annual_plan_id", STR(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_subscription_plan_paypal_monthly_plan_id", "subscription_plan", ["paypal_monthly_plan_id"])
    op.create_index("ix_subscription_plan_paypal_annual_plan_id", "subscription_plan", ["paypal_annual_plan_id"])

    op.create_table(
        "subscription",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("plan_id", sa.Integer(), sa.ForeignKey("subscription_plan.id"), nullable=False),
        sa.Column("status", subscription_status, nullable=False),
        sa.Column("interval", subscription_interval, nullable=False),
        sa.Column("current_period_start", sa.DateTime(), nullable=True),
        sa.Column("current_period_end", sa.DateTime(), nullable=True),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False),
        sa.Column("paypal_subscription_id", STR(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_subscription_user_id", "subscription", ["user_id"])
    op.create_index("ix_subscription_status", "subscription", ["status"])
    op.create_index(
        "ix_subscription_paypal_subscription_id", "subscription", ["paypal_subscription_id"], unique=True
    )

    op.create_table(
        "subscription_payment",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("subscription_id", sa.Integer(), sa.ForeignKey("subscription.id"), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency", STR(), nullable=False),
        sa.Column("status", STR(), nullable=False),
        sa.Column("paypal_sale_id", STR(), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_subscription_payment_subscription_id", "subscription_payment", ["subscription_id"])

    # ------------------------------------------------------------------
    # Certificates, ledger, audit, notifications
    # ------------------------------------------------------------------
    op.create_table(
        "certificate",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("achievement_id", sa.Integer(), nullable=False),
        sa.Column("type", achievement_type, nullable=False),
        sa.Column("certificate_id", STR(), nullable=False),
        sa.Column("issued_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        sa.UniqueConstraint("user_id", "achievement_id", "type"),
    )
    op.create_index("ix_certificate_user_id", "certificate", ["user_id"])
    op.create_index("ix_certificate_achievement_id", "certificate", ["achievement_id"])
    op.create_index("ix_certificate_certificate_id", "certificate", ["certificate_id"], unique=True)

    op.create_table(
        "webhook_event",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("provider", STR(), nullable=False),
        sa.Column("event_id", STR(), nullable=False),
        sa.Column("event_type", STR(), nullable=False),
        sa.Column("transmission_id", STR(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("processed_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("provider", "event_id"),
    )
    op.create_index("ix_webhook_event_processed_at", "webhook_event", ["processed_at"])

    op.create_table(
        "activity_log",
        sa.Column("id", STR(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("type", STR(), nullable=False),
        sa.Column("meta", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("created_by", STR(), nullable=False),
    )
    op.create_index("ix_activity_log_user_id", "activity_log", ["user_id"])
    op.create_index("ix_activity_log_type", "activity_log", ["type"])

    op.create_table(
        "notification",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("recipient_role", recipient_role, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("user_email", STR(), nullable=True),
        sa.Column("trigger_source", STR(), nullable=False),
        sa.Column("related_id", sa.Integer(), nullable=True),
        sa.Column("title", STR(), nullable=False),
        sa.Column("content", STR(), nullable=False),
        sa.Column("channel", notification_channel, nullable=False),
        sa.Column("status", notification_status, nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    """Downgrade schema."""
    for table in (
        "notification",
        "activity_log",
        "webhook_event",
        "certificate",
        "subscription_payment",
        "subscription",
        "subscription_plan",
        "enrollment",
        "payment",
        "purchase",
        "coupon",
        "learning_path_course",
        "learning_path",
        "progress",
        "lesson",
        "course",
        "user",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum in (
        notification_status,
        notification_channel,
        recipient_role,
        achievement_type,
        discount_type,
        subscription_tier,
        subscription_interval,
        subscription_status,
    ):
        enum.drop(bind, checkfirst=True)
