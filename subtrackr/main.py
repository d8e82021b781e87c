from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from . import analyzer, services
from .config import configure_logging
from .errors import ChannelDisabledError, NotFoundError, SubtrackrError
from .models import (
    AnalysisResult,
    DeliveryOutcome,
    HealthSummary,
    ManualMessageIn,
    NotificationHistory,
    NotificationPreferences,
    NotificationStats,
    NotificationStatus,
    PreferencesUpdate,
    Recommendation,
    SavingsSummary,
    Subscription,
    SubscriptionIn,
    SubscriptionStats,
    SubscriptionUpdate,
    SweepReport,
    User,
    UserIn,
)

configure_logging(services.tracker.config.log_level)

app = FastAPI(title="SubTrackr")


def get_tracker() -> services.SubscriptionTracker:
    return services.tracker


def current_user_id(x_user_id: int = Header(...)) -> int:
    get_tracker().get_user(x_user_id)
    return x_user_id


@app.exception_handler(NotFoundError)
def not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ChannelDisabledError)
def channel_disabled(request: Request, exc: ChannelDisabledError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.get("/health")
def health() -> dict:
    return {"status": "OK", "timestamp": datetime.utcnow().isoformat()}


# ----------------------------------------------------------------------
# Users
# ----------------------------------------------------------------------
@app.post("/users", response_model=User, status_code=201)
def register_user(payload: UserIn) -> User:
    return get_tracker().register_user(payload)


@app.get("/users/me", response_model=User)
def me(user_id: int = Depends(current_user_id)) -> User:
    return get_tracker().get_user(user_id)


# ----------------------------------------------------------------------
# Subscriptions
# ----------------------------------------------------------------------
@app.get("/subscriptions", response_model=list[Subscription])
def list_subscriptions(
    category: Optional[str] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
    sort_by: str = "next_billing_date",
    sort_order: str = "asc",
    user_id: int = Depends(current_user_id),
) -> List[Subscription]:
    return get_tracker().list_subscriptions(
        user_id, category, is_active, search, sort_by, sort_order
    )


@app.post("/subscriptions", response_model=Subscription, status_code=201)
def create_subscription(
    payload: SubscriptionIn, user_id: int = Depends(current_user_id)
) -> Subscription:
    return get_tracker().add_subscription(user_id, payload)


@app.get("/subscriptions/due-soon", response_model=list[Subscription])
def due_soon(
    days: Optional[int] = Query(None, ge=0), user_id: int = Depends(current_user_id)
) -> List[Subscription]:
    return get_tracker().due_soon(user_id, days)


@app.get("/subscriptions/stats/overview", response_model=SubscriptionStats)
def subscription_stats(user_id: int = Depends(current_user_id)) -> SubscriptionStats:
    return get_tracker().stats(user_id)


@app.get("/subscriptions/{subscription_id}", response_model=Subscription)
def get_subscription(subscription_id: int, user_id: int = Depends(current_user_id)) -> Subscription:
    return get_tracker().get_subscription(user_id, subscription_id)


@app.put("/subscriptions/{subscription_id}", response_model=Subscription)
def update_subscription(
    subscription_id: int,
    payload: SubscriptionUpdate,
    user_id: int = Depends(current_user_id),
) -> Subscription:
    return get_tracker().update_subscription(user_id, subscription_id, payload)


@app.delete("/subscriptions/{subscription_id}")
def delete_subscription(subscription_id: int, user_id: int = Depends(current_user_id)) -> dict:
    get_tracker().delete_subscription(user_id, subscription_id)
    return {"message": "Subscription deleted successfully"}


@app.put("/subscriptions/{subscription_id}/renew", response_model=Subscription)
def renew_subscription(subscription_id: int, user_id: int = Depends(current_user_id)) -> Subscription:
    return get_tracker().renew_subscription(user_id, subscription_id)


# ----------------------------------------------------------------------
# Analysis
# ----------------------------------------------------------------------
@app.get("/ai/analysis", response_model=AnalysisResult)
def analysis(user_id: int = Depends(current_user_id)) -> AnalysisResult:
    return get_tracker().analyze(user_id)


@app.get("/ai/insights")
def insights(user_id: int = Depends(current_user_id)) -> dict:
    result = get_tracker().analyze(user_id)
    return {"insights": result.insights, "health_score": result.health_score}


@app.get("/ai/recommendations")
def recommendations(user_id: int = Depends(current_user_id)) -> Dict[str, List[Recommendation]]:
    result = get_tracker().analyze(user_id)
    return {
        "recommendations": result.recommendations,
        "savings_opportunities": result.savings_opportunities,
    }


@app.get("/ai/categories")
def categories(user_id: int = Depends(current_user_id)) -> dict:
    result = get_tracker().analyze(user_id)
    return {
        "categories": result.categories,
        "monthly_spending": result.monthly_spending,
        "yearly_spending": result.yearly_spending,
    }


@app.get("/ai/health", response_model=HealthSummary)
def health_score(user_id: int = Depends(current_user_id)) -> HealthSummary:
    return analyzer.health_summary(get_tracker().analyze(user_id))


@app.get("/ai/savings", response_model=SavingsSummary)
def savings(user_id: int = Depends(current_user_id)) -> SavingsSummary:
    return analyzer.savings_summary(get_tracker().analyze(user_id))


# ----------------------------------------------------------------------
# Notifications
# ----------------------------------------------------------------------
@app.get("/notifications/preferences", response_model=NotificationPreferences)
def get_preferences(user_id: int = Depends(current_user_id)) -> NotificationPreferences:
    return get_tracker().preferences(user_id)


@app.put("/notifications/preferences", response_model=NotificationPreferences)
def update_preferences(
    payload: PreferencesUpdate, user_id: int = Depends(current_user_id)
) -> NotificationPreferences:
    return get_tracker().update_preferences(user_id, payload)


@app.get("/notifications/history", response_model=NotificationHistory)
def notification_history(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[NotificationStatus] = None,
    user_id: int = Depends(current_user_id),
) -> NotificationHistory:
    return get_tracker().notification_history(user_id, page, limit, status)


@app.get("/notifications/stats", response_model=NotificationStats)
def notification_stats(user_id: int = Depends(current_user_id)) -> NotificationStats:
    return get_tracker().notification_stats(user_id)


@app.post("/notifications/test")
def send_test_notification(payload: ManualMessageIn, user_id: int = Depends(current_user_id)) -> dict:
    try:
        get_tracker().send_test_notification(user_id, payload.type, payload.message)
    except ChannelDisabledError:
        raise
    except SubtrackrError as e:
        raise HTTPException(status_code=500, detail=f"Failed to send test notification: {e}")
    return {"message": "Test notification sent successfully"}


@app.post("/notifications/trigger/{subscription_id}", response_model=list[DeliveryOutcome])
def trigger_notifications(
    subscription_id: int, user_id: int = Depends(current_user_id)
) -> List[DeliveryOutcome]:
    return get_tracker().trigger_notifications(user_id, subscription_id)


@app.post("/notifications/sweep", response_model=SweepReport)
def run_sweep() -> SweepReport:
    return get_tracker().run_sweep()
