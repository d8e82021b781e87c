"""Due-date reminders.

A sweep picks the active subscriptions billed inside the sweep window and,
for each one, tries every channel the owner has opted in to. Each attempt is
recorded as its own Notification, whatever the outcome; a failing channel
never stops the remaining attempts.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from .channels import EmailChannel, SmsChannel
from .errors import (
    ChannelDisabledError,
    ChannelNotConfiguredError,
    DeliveryError,
    NotFoundError,
    SubtrackrError,
)
from .models import (
    DeliveryOutcome,
    MetadataValue,
    Notification,
    NotificationStatus,
    NotificationType,
    Subscription,
    SweepReport,
    User,
    naive_utc,
)
from .stores import NotificationStore, SubscriptionStore, UserStore

logger = logging.getLogger(__name__)

DUE_SUBJECT = "SubTrackr - Subscription Due"
REMINDER_SUBJECT = "SubTrackr - Subscription Reminder"
TEST_SUBJECT = "SubTrackr Test Notification"


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def days_until_due(due: datetime, now: datetime) -> int:
    """Whole calendar days from ``now`` to ``due``."""
    return (start_of_day(due) - start_of_day(now)).days


def format_due_date(due: datetime) -> str:
    return f"{due.month}/{due.day}/{due.year}"


def generate_notification_message(subscription: Subscription, days: int) -> str:
    name = subscription.name
    amount = f"${subscription.amount:.2f}"
    if days == 0:
        return f'Your subscription "{name}" is due today! Amount: {amount}'
    if days == 1:
        return f'Your subscription "{name}" is due tomorrow! Amount: {amount}'
    due = format_due_date(subscription.next_billing_date)
    return f'Your subscription "{name}" is due in {days} days ({due}). Amount: {amount}'


class NotificationScheduler:
    """Sends due reminders and records every attempt."""

    def __init__(
        self,
        subscriptions: SubscriptionStore,
        users: UserStore,
        notifications: NotificationStore,
        email_channel: Optional[EmailChannel] = None,
        sms_channel: Optional[SmsChannel] = None,
        timeout: float = 30,
        sweep_days: int = 1,
    ) -> None:
        self.subscriptions = subscriptions
        self.users = users
        self.notifications = notifications
        self.email_channel = email_channel
        self.sms_channel = sms_channel
        self.timeout = timeout
        self.sweep_days = sweep_days
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="delivery")

    def close(self, wait: bool = False) -> None:
        # A call stuck past its timeout keeps its worker; don't wait on it by default.
        self._executor.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    @staticmethod
    def due_window(now: datetime, days: int = 1) -> Tuple[datetime, datetime]:
        """Half-open ``[start of today, start of today + days)`` window."""
        start = start_of_day(now)
        return start, start + timedelta(days=days)

    def check_and_send(self, now: Optional[datetime] = None) -> SweepReport:
        now = naive_utc(now) or datetime.utcnow()
        start, end = self.due_window(now, self.sweep_days)
        due = self.subscriptions.find_due_within(start, end)
        report = SweepReport()

        for subscription in due:
            user = self.users.find(subscription.user_id)
            if user is None or not user.is_active:
                logger.debug(f"Skipping subscription {subscription.id}: owner unavailable")
                continue
            try:
                days = days_until_due(subscription.next_billing_date, now)
                message = generate_notification_message(subscription, days)
                outcomes = self._notify(
                    user, subscription, message, DUE_SUBJECT, now,
                    metadata={"trigger": "sweep", "days_until_due": days},
                )
            except Exception as e:
                logger.exception(f"Skipping subscription {subscription.id}: {e}")
                report.skipped += 1
                continue
            report.processed += 1
            report.outcomes.extend(outcomes)

        report.sent = sum(1 for outcome in report.outcomes if outcome.ok)
        report.failed = len(report.outcomes) - report.sent
        logger.info(
            f"Processed {report.processed} due subscriptions "
            f"({report.sent} sent, {report.failed} failed, {report.skipped} skipped)"
        )
        return report

    def trigger(
        self, subscription_id: int, user_id: int, now: Optional[datetime] = None
    ) -> List[DeliveryOutcome]:
        """Send reminders for one subscription right away.

        Raises:
            NotFoundError: If the subscription does not exist or belongs to
                another user.
        """
        now = naive_utc(now) or datetime.utcnow()
        subscription = self.subscriptions.get(subscription_id)
        if subscription.user_id != user_id:
            raise NotFoundError(f"Subscription {subscription_id} not found")
        user = self.users.get(user_id)
        days = days_until_due(subscription.next_billing_date, now)
        message = generate_notification_message(subscription, days)
        return self._notify(
            user, subscription, message, REMINDER_SUBJECT, now,
            metadata={"trigger": "manual", "days_until_due": days},
        )

    def send_test(self, user: User, channel: NotificationType, message: str) -> None:
        """Send an ad-hoc message without recording it.

        Raises:
            ChannelDisabledError: If the user has not enabled ``channel``.
            ChannelNotConfiguredError: If the channel has no credentials.
            DeliveryError: If the channel fails or times out.
        """
        prefs = user.preferences
        if channel is NotificationType.EMAIL and prefs.email_notifications:
            send, args = self._email_sender(), (user.email, TEST_SUBJECT, message)
        elif channel is NotificationType.SMS and prefs.sms_notifications and user.phone:
            send, args = self._sms_sender(), (user.phone, message)
        else:
            raise ChannelDisabledError(
                f"{channel.value.upper()} notifications are not enabled or phone number not provided"
            )
        try:
            self._call(send, *args)
        except FutureTimeoutError as e:
            raise DeliveryError(f"Delivery timed out after {self.timeout:g}s") from e
        except SubtrackrError:
            raise
        except Exception as e:
            raise DeliveryError(str(e) or e.__class__.__name__) from e

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _notify(
        self,
        user: User,
        subscription: Subscription,
        message: str,
        subject: str,
        now: datetime,
        metadata: Dict[str, MetadataValue],
    ) -> List[DeliveryOutcome]:
        outcomes: List[DeliveryOutcome] = []
        prefs = user.preferences

        if prefs.email_notifications:
            outcomes.append(self._attempt(
                NotificationType.EMAIL, user, subscription, message, now, metadata,
                lambda: self._call(self._email_sender(), user.email, subject, message),
            ))

        if prefs.sms_notifications and user.phone:
            outcomes.append(self._attempt(
                NotificationType.SMS, user, subscription, message, now, metadata,
                lambda: self._call(self._sms_sender(), user.phone, message),
            ))

        return outcomes

    def _attempt(
        self,
        channel: NotificationType,
        user: User,
        subscription: Subscription,
        message: str,
        now: datetime,
        metadata: Dict[str, MetadataValue],
        send: Callable[[], None],
    ) -> DeliveryOutcome:
        notification = Notification(
            user_id=user.id,
            subscription_id=subscription.id,
            type=channel,
            message=message,
            scheduled_for=now,
            metadata=dict(metadata),
        )
        error: Optional[str] = None
        try:
            send()
        except FutureTimeoutError:
            error = f"Delivery timed out after {self.timeout:g}s"
        except ChannelNotConfiguredError as e:
            error = str(e)
            logger.warning(f"Skipping {channel.value} for user {user.id}: {e}")
        except Exception as e:
            error = str(e) or e.__class__.__name__

        if error is None:
            notification.status = NotificationStatus.SENT
            notification.sent_at = datetime.utcnow()
        else:
            notification.status = NotificationStatus.FAILED
            notification.error = error
            logger.error(
                f"Failed to send {channel.value} for subscription {subscription.id}: {error}"
            )

        notification = self.notifications.create(notification)
        return DeliveryOutcome(
            channel=channel, ok=error is None, notification=notification, error=error
        )

    def _email_sender(self) -> Callable[..., None]:
        if self.email_channel is None:
            raise ChannelNotConfiguredError("email")
        return self.email_channel.send_email

    def _sms_sender(self) -> Callable[..., None]:
        if self.sms_channel is None:
            raise ChannelNotConfiguredError("sms")
        return self.sms_channel.send_sms

    def _call(self, send: Callable[..., None], *args: str) -> None:
        future = self._executor.submit(send, *args)
        try:
            future.result(timeout=self.timeout)
        except FutureTimeoutError:
            # Still queued behind busy workers: make sure it never starts.
            # A send that is already running cannot be stopped.
            future.cancel()
            raise
