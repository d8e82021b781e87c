from __future__ import annotations

import itertools
import time
from datetime import datetime, timedelta

import pytest

from subtrackr.models import BillingCycle, Category, Subscription

NOW = datetime(2026, 3, 10, 15, 0, 0)


class FakeEmailChannel:
    def __init__(self, fail_for: tuple[str, ...] = (), error: str = "SMTP relay unavailable") -> None:
        self.fail_for = fail_for
        self.error = error
        self.sent: list[tuple[str, str, str]] = []

    def send_email(self, to: str, subject: str, body: str) -> None:
        if "*" in self.fail_for or to in self.fail_for:
            raise RuntimeError(self.error)
        self.sent.append((to, subject, body))


class FakeSmsChannel:
    def __init__(self, fail: bool = False, delay: float = 0.0) -> None:
        self.fail = fail
        self.delay = delay
        self.sent: list[tuple[str, str]] = []

    def send_sms(self, to: str, body: str) -> None:
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise RuntimeError("carrier rejected message")
        self.sent.append((to, body))


@pytest.fixture
def make_subscription():
    ids = itertools.count(1)

    def factory(**overrides) -> Subscription:
        data = {
            "id": next(ids),
            "user_id": 1,
            "name": "Service",
            "category": Category.OTHER,
            "amount": 10.0,
            "billing_cycle": BillingCycle.MONTHLY,
            "next_billing_date": NOW + timedelta(days=14),
        }
        data.update(overrides)
        return Subscription(**data)

    return factory
