"""Portfolio analysis for a user's subscriptions.

All functions are pure: they take an explicit snapshot of subscriptions and
return fresh values. Inactive subscriptions are ignored by every spend,
category and recommendation figure; they only show up in the inactive
insight and in the trial bonus of the health score.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from .cycles import cycle_multiplier, to_monthly, to_yearly
from .models import (
    AnalysisResult,
    BillingCycle,
    Category,
    CategorySummary,
    HealthSummary,
    Insight,
    Recommendation,
    SavingsSummary,
    Subscription,
)

logger = logging.getLogger(__name__)

HIGH_SPENDING_THRESHOLD = 100.0
VERY_HIGH_SPENDING_THRESHOLD = 200.0
MANY_SUBSCRIPTIONS = 10
TOO_MANY_SUBSCRIPTIONS = 15
MIN_HEALTHY_CATEGORIES = 3
CONCENTRATION_SHARE = 0.5

STREAMING_CONSOLIDATION_MIN = 3
STREAMING_SAVINGS_RATE = 0.3
REVIEW_THRESHOLD = 20.0
REVIEW_SAVINGS_RATE = 0.5
ANNUAL_SWITCH_THRESHOLD = 10.0
ANNUAL_DISCOUNT_RATE = 0.2
HIGH_COST_THRESHOLD = 30.0
HIGH_COST_SAVINGS_RATE = 0.4
# Placeholder figure, not derived from the duplicated amounts.
DUPLICATE_SAVINGS_ESTIMATE = 15.0


def _active(subscriptions: Sequence[Subscription]) -> List[Subscription]:
    return [sub for sub in subscriptions if sub.is_active]


def monthly_cost(subscription: Subscription) -> float:
    return to_monthly(subscription.amount, subscription.billing_cycle)


# ----------------------------------------------------------------------
# Aggregates
# ----------------------------------------------------------------------
def calculate_total_spending(subscriptions: Sequence[Subscription]) -> float:
    return sum(
        sub.amount * cycle_multiplier(sub.billing_cycle) for sub in _active(subscriptions)
    )


def calculate_monthly_spending(subscriptions: Sequence[Subscription]) -> float:
    return sum(monthly_cost(sub) for sub in _active(subscriptions))


def calculate_yearly_spending(subscriptions: Sequence[Subscription]) -> float:
    return sum(to_yearly(sub.amount, sub.billing_cycle) for sub in _active(subscriptions))


def analyze_categories(subscriptions: Sequence[Subscription]) -> Dict[str, CategorySummary]:
    """Group active subscriptions by category, in first-seen order."""
    categories: Dict[str, CategorySummary] = {}
    for sub in _active(subscriptions):
        key = Category(sub.category).value
        summary = categories.setdefault(key, CategorySummary())
        summary.count += 1
        summary.total_monthly += monthly_cost(sub)
        summary.subscriptions.append(sub)
    return categories


def calculate_health_score(subscriptions: Sequence[Subscription]) -> int:
    if not subscriptions:
        return 100

    score = 100
    active = _active(subscriptions)

    monthly = calculate_monthly_spending(active)
    if monthly > HIGH_SPENDING_THRESHOLD:
        score -= 20
    if monthly > VERY_HIGH_SPENDING_THRESHOLD:
        score -= 20

    if len(active) > MANY_SUBSCRIPTIONS:
        score -= 15
    if len(active) > TOO_MANY_SUBSCRIPTIONS:
        score -= 15

    if len(analyze_categories(active)) < MIN_HEALTHY_CATEGORIES:
        score -= 10

    if any(sub.trial_end_date is not None for sub in subscriptions):
        score += 5

    return max(0, min(100, score))


def _top_category(categories: Dict[str, CategorySummary]) -> Optional[str]:
    if not categories:
        return None
    # max() keeps the first of equal totals, matching a stable descending sort
    return max(categories, key=lambda name: categories[name].total_monthly)


# ----------------------------------------------------------------------
# Insights
# ----------------------------------------------------------------------
def generate_insights(
    subscriptions: Sequence[Subscription], now: Optional[datetime] = None
) -> List[Insight]:
    now = now or datetime.utcnow()
    insights: List[Insight] = []
    monthly = calculate_monthly_spending(subscriptions)
    categories = analyze_categories(subscriptions)

    if monthly > HIGH_SPENDING_THRESHOLD:
        insights.append(Insight(
            type="warning",
            title="High Monthly Spending",
            message=(
                f"You're spending ${monthly:.2f} monthly on subscriptions. "
                "Consider reviewing your highest-cost services."
            ),
            priority="high",
        ))

    top = _top_category(categories)
    if top is not None and categories[top].total_monthly > monthly * CONCENTRATION_SHARE:
        share = categories[top].total_monthly / monthly * 100
        insights.append(Insight(
            type="info",
            title="Category Concentration",
            message=f"{top.capitalize()} services make up {share:.1f}% of your spending.",
            priority="medium",
        ))

    trials = [
        sub for sub in subscriptions
        if sub.trial_end_date is not None and sub.trial_end_date > now
    ]
    if trials:
        insights.append(Insight(
            type="warning",
            title="Active Trial Periods",
            message=(
                f"You have {len(trials)} subscription(s) in trial period. "
                "Set reminders to avoid unexpected charges."
            ),
            priority="high",
        ))

    inactive = [sub for sub in subscriptions if not sub.is_active]
    if inactive:
        insights.append(Insight(
            type="success",
            title="Inactive Subscriptions",
            message=(
                f"You have {len(inactive)} inactive subscription(s). "
                "Consider removing them to clean up your list."
            ),
            priority="low",
        ))

    return insights


# ----------------------------------------------------------------------
# Recommendations and savings
# ----------------------------------------------------------------------
def generate_recommendations(subscriptions: Sequence[Subscription]) -> List[Recommendation]:
    recommendations: List[Recommendation] = []
    active = _active(subscriptions)
    categories = analyze_categories(active)

    streaming = categories.get(Category.STREAMING.value)
    if streaming is not None and streaming.count >= STREAMING_CONSOLIDATION_MIN:
        total = streaming.total_monthly
        recommendations.append(Recommendation(
            type="optimization",
            title="Streaming Service Consolidation",
            message=(
                f"You have {streaming.count} streaming services costing ${total:.2f}/month. "
                "Consider rotating services or using family plans."
            ),
            potential_savings=total * STREAMING_SAVINGS_RATE,
            action="review_streaming",
        ))

    for sub in active:
        cost = monthly_cost(sub)
        if cost > REVIEW_THRESHOLD:
            recommendations.append(Recommendation(
                type="review",
                title=f"Review {sub.name}",
                message=f"{sub.name} costs ${cost:.2f}/month. Consider if you're getting full value.",
                potential_savings=cost * REVIEW_SAVINGS_RATE,
                action="review_subscription",
                subscription_id=sub.id,
            ))

    for sub in active:
        if sub.billing_cycle == BillingCycle.MONTHLY and sub.amount > ANNUAL_SWITCH_THRESHOLD:
            saving = sub.amount * ANNUAL_DISCOUNT_RATE
            recommendations.append(Recommendation(
                type="savings",
                title=f"Annual Plan for {sub.name}",
                message=f"Switch to annual billing for {sub.name} to save ~${saving:.2f}/year.",
                potential_savings=saving,
                action="switch_to_annual",
                subscription_id=sub.id,
            ))

    return recommendations


def has_duplicate_names(subscriptions: Sequence[Subscription]) -> bool:
    seen = set()
    for sub in _active(subscriptions):
        key = sub.name.lower()
        if key in seen:
            return True
        seen.add(key)
    return False


def find_savings_opportunities(subscriptions: Sequence[Subscription]) -> List[Recommendation]:
    opportunities: List[Recommendation] = []

    if has_duplicate_names(subscriptions):
        opportunities.append(Recommendation(
            type="duplicate",
            title="Potential Duplicate Services",
            message="Found potential duplicate services. Review and cancel unused ones.",
            potential_savings=DUPLICATE_SAVINGS_ESTIMATE,
            action="review_duplicates",
        ))

    for sub in _active(subscriptions):
        cost = monthly_cost(sub)
        if cost > HIGH_COST_THRESHOLD:
            opportunities.append(Recommendation(
                type="high_cost",
                title=f"High-Cost Service: {sub.name}",
                message=f"{sub.name} costs ${cost:.2f}/month. Look for alternatives or negotiate.",
                potential_savings=cost * HIGH_COST_SAVINGS_RATE,
                action="review_high_cost",
                subscription_id=sub.id,
            ))

    return opportunities


# ----------------------------------------------------------------------
# Entry points
# ----------------------------------------------------------------------
def analyze_subscriptions(
    subscriptions: Sequence[Subscription], now: Optional[datetime] = None
) -> AnalysisResult:
    if not subscriptions:
        return AnalysisResult()

    result = AnalysisResult(
        total_spending=calculate_total_spending(subscriptions),
        monthly_spending=calculate_monthly_spending(subscriptions),
        yearly_spending=calculate_yearly_spending(subscriptions),
        categories=analyze_categories(subscriptions),
        insights=generate_insights(subscriptions, now),
        recommendations=generate_recommendations(subscriptions),
        health_score=calculate_health_score(subscriptions),
        savings_opportunities=find_savings_opportunities(subscriptions),
    )
    logger.debug(
        "Analysed %d subscriptions: monthly=%.2f score=%d",
        len(subscriptions), result.monthly_spending, result.health_score,
    )
    return result


def health_level(score: int) -> str:
    if score >= 80:
        return "excellent"
    if score >= 60:
        return "good"
    if score >= 40:
        return "fair"
    return "poor"


def health_summary(result: AnalysisResult) -> HealthSummary:
    return HealthSummary(
        score=result.health_score,
        level=health_level(result.health_score),
        monthly_spending=result.monthly_spending,
        yearly_spending=result.yearly_spending,
        active_subscriptions=sum(cat.count for cat in result.categories.values()),
        top_category=_top_category(result.categories) or "none",
    )


def savings_summary(result: AnalysisResult) -> SavingsSummary:
    total = sum(rec.potential_savings for rec in result.recommendations) + sum(
        opp.potential_savings for opp in result.savings_opportunities
    )
    percentage = 0.0
    if result.monthly_spending:
        percentage = round(total / result.monthly_spending * 100, 1)
    return SavingsSummary(
        opportunities=result.savings_opportunities,
        recommendations=result.recommendations,
        total_potential_savings=total,
        monthly_spending=result.monthly_spending,
        potential_savings_percentage=percentage,
    )
