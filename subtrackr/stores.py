from __future__ import annotations

import math
import threading
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from .cycles import cycle_days
from .errors import NotFoundError
from .models import (
    Notification,
    NotificationHistory,
    NotificationPreferences,
    NotificationStats,
    NotificationStatus,
    NotificationTypeStats,
    PreferencesUpdate,
    Subscription,
    SubscriptionIn,
    SubscriptionUpdate,
    User,
    UserIn,
)


class SubscriptionStore:
    """In-memory subscription persistence keyed by id."""

    def __init__(self) -> None:
        self._subscriptions: Dict[int, Subscription] = {}
        self._sequence: int = 0
        self._lock = threading.Lock()

    def add(self, user_id: int, payload: SubscriptionIn) -> Subscription:
        with self._lock:
            self._sequence += 1
            subscription = Subscription(id=self._sequence, user_id=user_id, **payload.model_dump())
            self._subscriptions[subscription.id] = subscription
        return subscription

    def get(self, subscription_id: int) -> Subscription:
        subscription = self._subscriptions.get(subscription_id)
        if subscription is None:
            raise NotFoundError(f"Subscription {subscription_id} not found")
        return subscription

    def get_for_user(self, subscription_id: int, user_id: int) -> Subscription:
        subscription = self.get(subscription_id)
        if subscription.user_id != user_id:
            raise NotFoundError(f"Subscription {subscription_id} not found")
        return subscription

    def update(self, subscription_id: int, changes: SubscriptionUpdate) -> Subscription:
        with self._lock:
            current = self.get(subscription_id)
            updated = Subscription.model_validate({
                **current.model_dump(),
                **changes.model_dump(exclude_unset=True),
            })
            self._subscriptions[subscription_id] = updated
        return updated

    def delete(self, subscription_id: int) -> None:
        with self._lock:
            self.get(subscription_id)
            del self._subscriptions[subscription_id]

    def renew(self, subscription_id: int, now: Optional[datetime] = None) -> Subscription:
        """Record a payment and move the next billing date forward one cycle."""
        now = now or datetime.utcnow()
        with self._lock:
            current = self.get(subscription_id)
            renewed = current.model_copy(update={
                "next_billing_date": advance_billing_date(current),
                "last_payment_date": now,
                "total_paid": current.total_paid + current.amount,
            })
            self._subscriptions[subscription_id] = renewed
        return renewed

    def find_by_user(
        self,
        user_id: int,
        category: Optional[str] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> List[Subscription]:
        results = [s for s in self._subscriptions.values() if s.user_id == user_id]
        if category is not None:
            results = [s for s in results if s.category == category]
        if is_active is not None:
            results = [s for s in results if s.is_active is is_active]
        if search:
            needle = search.lower()
            results = [
                s for s in results
                if any(needle in (text or "").lower() for text in (s.name, s.description, s.notes))
            ]
        return results

    def find_due_within(self, start: datetime, end: datetime) -> List[Subscription]:
        """Active subscriptions billed in ``[start, end)``, across all users."""
        return [
            s for s in self._subscriptions.values()
            if s.is_active and start <= s.next_billing_date < end
        ]

    def find_due_soon(
        self, user_id: int, days: int = 7, now: Optional[datetime] = None
    ) -> List[Subscription]:
        cutoff = (now or datetime.utcnow()) + timedelta(days=days)
        due = [
            s for s in self.find_by_user(user_id, is_active=True)
            if s.next_billing_date <= cutoff
        ]
        return sorted(due, key=lambda s: s.next_billing_date)


def advance_billing_date(subscription: Subscription) -> datetime:
    return subscription.next_billing_date + timedelta(days=cycle_days(subscription.billing_cycle))


class UserStore:
    """In-memory users and their notification preferences."""

    def __init__(self) -> None:
        self._users: Dict[int, User] = {}
        self._sequence: int = 0
        self._lock = threading.Lock()

    def add(self, payload: UserIn) -> User:
        with self._lock:
            self._sequence += 1
            user = User(id=self._sequence, **payload.model_dump())
            self._users[user.id] = user
        return user

    def find(self, user_id: int) -> Optional[User]:
        return self._users.get(user_id)

    def get(self, user_id: int) -> User:
        user = self.find(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def get_preferences(self, user_id: int) -> NotificationPreferences:
        return self.get(user_id).preferences

    def update_preferences(self, user_id: int, changes: PreferencesUpdate) -> NotificationPreferences:
        with self._lock:
            user = self.get(user_id)
            preferences = user.preferences.model_copy(update=changes.model_dump(exclude_none=True))
            self._users[user_id] = user.model_copy(update={"preferences": preferences})
        return preferences


class NotificationStore:
    """Append-only notification log."""

    def __init__(self) -> None:
        self._notifications: List[Notification] = []
        self._lock = threading.Lock()

    def create(self, record: Notification) -> Notification:
        with self._lock:
            stored = record.model_copy(update={"id": len(self._notifications) + 1})
            self._notifications.append(stored)
        return stored

    def for_user(self, user_id: int) -> List[Notification]:
        return [n for n in self._notifications if n.user_id == user_id]

    def history(
        self,
        user_id: int,
        page: int = 1,
        limit: int = 20,
        status: Optional[NotificationStatus] = None,
    ) -> NotificationHistory:
        records = self.for_user(user_id)
        if status is not None:
            records = [n for n in records if n.status is status]
        records.sort(key=lambda n: (n.created_at, n.id or 0), reverse=True)
        skip = (page - 1) * limit
        return NotificationHistory(
            notifications=records[skip:skip + limit],
            page=page,
            limit=limit,
            total=len(records),
            pages=math.ceil(len(records) / limit),
        )

    def stats(self, user_id: int) -> NotificationStats:
        stats = NotificationStats()
        for notification in self.for_user(user_id):
            status = notification.status.value
            stats.status_stats[status] = stats.status_stats.get(status, 0) + 1
            by_type = stats.type_stats.setdefault(notification.type.value, NotificationTypeStats())
            by_type.count += 1
            if notification.status is NotificationStatus.SENT:
                by_type.sent += 1
            elif notification.status is NotificationStatus.FAILED:
                by_type.failed += 1
        return stats
