from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from . import analyzer
from .channels import SmtpEmailChannel, TwilioSmsChannel
from .config import AppConfig, load_config
from .models import (
    AnalysisResult,
    CategoryStat,
    DeliveryOutcome,
    NotificationHistory,
    NotificationPreferences,
    NotificationStats,
    NotificationStatus,
    NotificationType,
    PreferencesUpdate,
    SpendingOverview,
    Subscription,
    SubscriptionIn,
    SubscriptionStats,
    SubscriptionUpdate,
    SweepReport,
    User,
    UserIn,
)
from .notifications import NotificationScheduler
from .stores import NotificationStore, SubscriptionStore, UserStore

logger = logging.getLogger(__name__)

UPCOMING_RENEWALS_DAYS = 30
UPCOMING_RENEWALS_LIMIT = 10


class SubscriptionTracker:
    """Wires the stores, the analyzer and the reminder scheduler together."""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        scheduler: Optional[NotificationScheduler] = None,
    ) -> None:
        self.config = config or AppConfig()
        self.subscriptions = SubscriptionStore()
        self.users = UserStore()
        self.notifications = NotificationStore()
        self.scheduler = scheduler or NotificationScheduler(
            self.subscriptions,
            self.users,
            self.notifications,
            email_channel=SmtpEmailChannel(self.config.smtp),
            sms_channel=TwilioSmsChannel(self.config.twilio),
            timeout=self.config.scheduler.delivery_timeout,
            sweep_days=self.config.scheduler.sweep_days,
        )

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    def register_user(self, payload: UserIn) -> User:
        user = self.users.add(payload)
        logger.info(f"Registered user {user.id}")
        return user

    def get_user(self, user_id: int) -> User:
        return self.users.get(user_id)

    def preferences(self, user_id: int) -> NotificationPreferences:
        return self.users.get_preferences(user_id)

    def update_preferences(self, user_id: int, changes: PreferencesUpdate) -> NotificationPreferences:
        return self.users.update_preferences(user_id, changes)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------
    def add_subscription(self, user_id: int, payload: SubscriptionIn) -> Subscription:
        self.users.get(user_id)
        subscription = self.subscriptions.add(user_id, payload)
        logger.info(f"Created subscription {subscription.id} ({subscription.name}) for user {user_id}")
        return subscription

    def list_subscriptions(
        self,
        user_id: int,
        category: Optional[str] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        sort_by: str = "next_billing_date",
        sort_order: str = "asc",
    ) -> List[Subscription]:
        results = self.subscriptions.find_by_user(user_id, category, is_active, search)
        if sort_by not in Subscription.model_fields:
            sort_by = "next_billing_date"
        # None-valued fields (e.g. no trial) sort last
        present = [s for s in results if getattr(s, sort_by) is not None]
        missing = [s for s in results if getattr(s, sort_by) is None]
        present.sort(key=lambda s: getattr(s, sort_by), reverse=sort_order == "desc")
        return present + missing

    def get_subscription(self, user_id: int, subscription_id: int) -> Subscription:
        return self.subscriptions.get_for_user(subscription_id, user_id)

    def update_subscription(
        self, user_id: int, subscription_id: int, changes: SubscriptionUpdate
    ) -> Subscription:
        self.subscriptions.get_for_user(subscription_id, user_id)
        return self.subscriptions.update(subscription_id, changes)

    def delete_subscription(self, user_id: int, subscription_id: int) -> None:
        self.subscriptions.get_for_user(subscription_id, user_id)
        self.subscriptions.delete(subscription_id)
        logger.info(f"Deleted subscription {subscription_id}")

    def renew_subscription(
        self, user_id: int, subscription_id: int, now: Optional[datetime] = None
    ) -> Subscription:
        self.subscriptions.get_for_user(subscription_id, user_id)
        renewed = self.subscriptions.renew(subscription_id, now)
        logger.info(
            f"Renewed subscription {subscription_id}; next billing {renewed.next_billing_date.date()}"
        )
        return renewed

    def due_soon(
        self, user_id: int, days: Optional[int] = None, now: Optional[datetime] = None
    ) -> List[Subscription]:
        if days is None:
            days = self.config.scheduler.due_soon_days
        return self.subscriptions.find_due_soon(user_id, days, now)

    def stats(self, user_id: int, now: Optional[datetime] = None) -> SubscriptionStats:
        now = now or datetime.utcnow()
        active = self.subscriptions.find_by_user(user_id, is_active=True)
        overview = SpendingOverview(
            total_monthly=round(analyzer.calculate_monthly_spending(active), 2),
            total_yearly=round(analyzer.calculate_yearly_spending(active), 2),
            count=len(active),
        )

        totals: Dict[str, CategoryStat] = {}
        for sub in active:
            key = sub.category.value
            stat = totals.setdefault(key, CategoryStat(category=key, count=0, total_amount=0.0))
            stat.count += 1
            stat.total_amount += sub.amount

        cutoff = now + timedelta(days=UPCOMING_RENEWALS_DAYS)
        upcoming = sorted(
            (s for s in active if s.next_billing_date <= cutoff),
            key=lambda s: s.next_billing_date,
        )
        return SubscriptionStats(
            overview=overview,
            category_stats=sorted(totals.values(), key=lambda s: s.total_amount, reverse=True),
            upcoming_renewals=upcoming[:UPCOMING_RENEWALS_LIMIT],
        )

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------
    def analyze(self, user_id: int, now: Optional[datetime] = None) -> AnalysisResult:
        return analyzer.analyze_subscriptions(self.subscriptions.find_by_user(user_id), now)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    def run_sweep(self, now: Optional[datetime] = None) -> SweepReport:
        return self.scheduler.check_and_send(now)

    def trigger_notifications(
        self, user_id: int, subscription_id: int, now: Optional[datetime] = None
    ) -> List[DeliveryOutcome]:
        return self.scheduler.trigger(subscription_id, user_id, now)

    def send_test_notification(self, user_id: int, channel: NotificationType, message: str) -> None:
        self.scheduler.send_test(self.users.get(user_id), channel, message)

    def notification_history(
        self,
        user_id: int,
        page: int = 1,
        limit: int = 20,
        status: Optional[NotificationStatus] = None,
    ) -> NotificationHistory:
        return self.notifications.history(user_id, page, limit, status)

    def notification_stats(self, user_id: int) -> NotificationStats:
        return self.notifications.stats(user_id)


tracker = SubscriptionTracker(load_config())
