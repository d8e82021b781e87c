from __future__ import annotations

from datetime import timedelta

import pytest

from subtrackr import analyzer
from subtrackr.models import AnalysisResult, BillingCycle, Category, Subscription

from conftest import NOW


def test_empty_portfolio_has_neutral_defaults():
    result = analyzer.analyze_subscriptions([], NOW)

    assert result == AnalysisResult()
    assert result.monthly_spending == 0
    assert result.yearly_spending == 0
    assert result.categories == {}
    assert result.health_score == 100
    assert result.insights == []
    assert result.recommendations == []
    assert result.savings_opportunities == []
    assert analyzer.calculate_health_score([]) == 100


def test_three_streaming_services(make_subscription):
    subs = [
        make_subscription(name=name, category=Category.STREAMING, amount=10)
        for name in ("Netflix", "Hulu", "Disney+")
    ]

    result = analyzer.analyze_subscriptions(subs, NOW)

    assert result.monthly_spending == pytest.approx(30.0)
    streaming = result.categories["streaming"]
    assert streaming.count == 3
    assert streaming.total_monthly == pytest.approx(30.0)
    assert [s.name for s in streaming.subscriptions] == ["Netflix", "Hulu", "Disney+"]

    assert len(result.recommendations) == 1
    consolidation = result.recommendations[0]
    assert consolidation.action == "review_streaming"
    assert consolidation.potential_savings == pytest.approx(9.0)
    assert consolidation.subscription_id is None
    assert result.savings_opportunities == []


def test_two_streaming_services_are_not_consolidated(make_subscription):
    subs = [
        make_subscription(name=name, category=Category.STREAMING, amount=5)
        for name in ("Netflix", "Hulu")
    ]
    recs = analyzer.generate_recommendations(subs)
    assert all(rec.action != "review_streaming" for rec in recs)


def test_inactive_subscriptions_never_count_towards_spend(make_subscription):
    active = make_subscription(name="Gym", category=Category.FITNESS, amount=10)
    inactive = make_subscription(
        name="Old Gym", category=Category.MEMBERSHIP, amount=500, is_active=False
    )

    result = analyzer.analyze_subscriptions([active, inactive], NOW)

    assert result.monthly_spending == pytest.approx(10)
    assert result.yearly_spending == pytest.approx(120)
    assert result.total_spending == pytest.approx(120)
    assert list(result.categories) == ["fitness"]
    assert all(rec.subscription_id != inactive.id for rec in result.recommendations)

    inactive_insights = [i for i in result.insights if i.title == "Inactive Subscriptions"]
    assert len(inactive_insights) == 1
    assert "1 inactive subscription(s)" in inactive_insights[0].message
    assert inactive_insights[0].type == "success"
    assert inactive_insights[0].priority == "low"


def test_inactive_insight_counts_every_inactive_subscription(make_subscription):
    subs = [make_subscription(is_active=False) for _ in range(3)]
    insights = analyzer.generate_insights(subs, NOW)
    assert [i.title for i in insights] == ["Inactive Subscriptions"]
    assert "3 inactive" in insights[0].message


def test_case_insensitive_duplicates_yield_one_opportunity(make_subscription):
    subs = [
        make_subscription(name="Netflix", category=Category.STREAMING, amount=25),
        make_subscription(name="netflix", category=Category.STREAMING, amount=15),
    ]

    opportunities = analyzer.find_savings_opportunities(subs)

    duplicates = [o for o in opportunities if o.type == "duplicate"]
    assert len(duplicates) == 1
    assert duplicates[0].potential_savings == analyzer.DUPLICATE_SAVINGS_ESTIMATE
    assert duplicates[0].subscription_id is None

    reviews = [r for r in analyzer.generate_recommendations(subs) if r.type == "review"]
    assert [r.subscription_id for r in reviews] == [subs[0].id]


def test_duplicates_over_both_thresholds_keep_separate_entries(make_subscription):
    subs = [
        make_subscription(name="Netflix", amount=35),
        make_subscription(name="NETFLIX", amount=32),
    ]

    recs = analyzer.generate_recommendations(subs)
    opportunities = analyzer.find_savings_opportunities(subs)

    assert [r.subscription_id for r in recs if r.type == "review"] == [subs[0].id, subs[1].id]
    assert [o.type for o in opportunities] == ["duplicate", "high_cost", "high_cost"]


def test_inactive_duplicates_are_ignored(make_subscription):
    subs = [
        make_subscription(name="Spotify"),
        make_subscription(name="spotify", is_active=False),
    ]
    assert analyzer.find_savings_opportunities(subs) == []


def test_cost_rules_use_monthly_equivalent(make_subscription):
    daily = make_subscription(name="Coffee Club", amount=1, billing_cycle=BillingCycle.DAILY)
    yearly = make_subscription(name="Cloud", amount=300, billing_cycle=BillingCycle.YEARLY)

    recs = analyzer.generate_recommendations([daily, yearly])
    opportunities = analyzer.find_savings_opportunities([daily, yearly])

    review = {r.subscription_id: r for r in recs if r.type == "review"}
    assert review[daily.id].potential_savings == pytest.approx(30.44 * 0.5)
    assert review[yearly.id].potential_savings == pytest.approx(300 * 0.083 * 0.5)
    assert "$30.44/month" in review[daily.id].message

    assert [o.subscription_id for o in opportunities] == [daily.id]
    assert opportunities[0].potential_savings == pytest.approx(30.44 * 0.4)

    # neither is billed monthly, so no annual switch
    assert not [r for r in recs if r.action == "switch_to_annual"]


def test_annual_switch_for_monthly_plans_over_ten(make_subscription):
    subs = [
        make_subscription(name="Exactly Ten", amount=10),
        make_subscription(name="Eleven", amount=11),
    ]

    switches = [r for r in analyzer.generate_recommendations(subs) if r.action == "switch_to_annual"]

    assert len(switches) == 1
    assert switches[0].subscription_id == subs[1].id
    assert switches[0].potential_savings == pytest.approx(2.2)
    assert switches[0].title == "Annual Plan for Eleven"


def test_total_and_yearly_spending_are_reported_separately(make_subscription):
    subs = [
        make_subscription(amount=5, billing_cycle=BillingCycle.WEEKLY),
        make_subscription(amount=60, billing_cycle=BillingCycle.QUARTERLY),
    ]
    assert analyzer.calculate_total_spending(subs) == pytest.approx(5 * 52 + 60 * 4)
    assert analyzer.calculate_yearly_spending(subs) == pytest.approx(5 * 52 + 60 * 4)
    assert analyzer.calculate_monthly_spending(subs) == pytest.approx(5 * 4.33 + 60 * 0.33)


def test_unknown_cycle_is_tolerated(make_subscription):
    template = make_subscription(amount=40)
    odd = Subscription.model_construct(**{**template.model_dump(), "billing_cycle": "fortnightly"})

    result = analyzer.analyze_subscriptions([odd], NOW)

    assert result.monthly_spending == pytest.approx(40)
    assert result.yearly_spending == pytest.approx(480)
    assert result.total_spending == pytest.approx(480)


# ----------------------------------------------------------------------
# Health score
# ----------------------------------------------------------------------
def _spread(make_subscription, amounts):
    categories = [Category.MUSIC, Category.SOFTWARE, Category.GAMING]
    return [
        make_subscription(name=f"svc{i}", category=categories[i % 3], amount=amount)
        for i, amount in enumerate(amounts)
    ]


def test_health_score_is_full_for_small_diverse_portfolio(make_subscription):
    assert analyzer.calculate_health_score(_spread(make_subscription, [5, 5, 5])) == 100


def test_health_score_spending_penalties_are_cumulative(make_subscription):
    assert analyzer.calculate_health_score(_spread(make_subscription, [50, 50, 50])) == 80
    assert analyzer.calculate_health_score(_spread(make_subscription, [80, 80, 80])) == 60


def test_health_score_count_penalties_are_cumulative(make_subscription):
    assert analyzer.calculate_health_score(_spread(make_subscription, [1] * 11)) == 85
    assert analyzer.calculate_health_score(_spread(make_subscription, [1] * 16)) == 70


def test_health_score_penalises_few_categories(make_subscription):
    subs = [make_subscription(category=Category.STREAMING, amount=5) for _ in range(3)]
    assert analyzer.calculate_health_score(subs) == 90


def test_health_score_trial_bonus_counts_inactive_and_is_capped(make_subscription):
    subs = _spread(make_subscription, [5, 5, 5])
    subs.append(make_subscription(is_active=False, trial_end_date=NOW - timedelta(days=3)))
    assert analyzer.calculate_health_score(subs) == 100

    narrow = [make_subscription(category=Category.RENT, trial_end_date=NOW)]
    assert analyzer.calculate_health_score(narrow) == 95


def test_health_score_floor(make_subscription):
    subs = [make_subscription(category=Category.RENT, amount=100) for _ in range(20)]
    assert analyzer.calculate_health_score(subs) == 20


def test_health_score_for_only_inactive_subscriptions(make_subscription):
    assert analyzer.calculate_health_score([make_subscription(is_active=False)]) == 90


@pytest.mark.parametrize("count", [0, 1, 5, 12, 30])
@pytest.mark.parametrize("amount", [0, 9.99, 75, 400])
def test_health_score_stays_in_bounds(make_subscription, count, amount):
    subs = [
        make_subscription(amount=amount, trial_end_date=NOW if i % 2 else None)
        for i in range(count)
    ]
    assert 0 <= analyzer.calculate_health_score(subs) <= 100


# ----------------------------------------------------------------------
# Insights
# ----------------------------------------------------------------------
def test_insights_fire_in_rule_order(make_subscription):
    subs = [
        make_subscription(name="Rent", category=Category.RENT, amount=120),
        make_subscription(name="Trial App", category=Category.SOFTWARE, amount=5,
                          trial_end_date=NOW + timedelta(days=5)),
        make_subscription(name="Old", is_active=False),
    ]

    insights = analyzer.generate_insights(subs, NOW)

    assert [i.title for i in insights] == [
        "High Monthly Spending",
        "Category Concentration",
        "Active Trial Periods",
        "Inactive Subscriptions",
    ]
    assert [i.priority for i in insights] == ["high", "medium", "high", "low"]
    assert "$125.00 monthly" in insights[0].message
    assert insights[1].message.startswith("Rent services make up 96.0%")
    assert "1 subscription(s) in trial" in insights[2].message


def test_concentration_requires_a_strict_majority(make_subscription):
    subs = [
        make_subscription(category=Category.MUSIC, amount=10),
        make_subscription(category=Category.GAMING, amount=10),
    ]
    assert analyzer.generate_insights(subs, NOW) == []


def test_expired_trials_are_not_reported(make_subscription):
    subs = [make_subscription(trial_end_date=NOW - timedelta(minutes=1))]
    assert all(i.title != "Active Trial Periods" for i in analyzer.generate_insights(subs, NOW))


# ----------------------------------------------------------------------
# Derived views
# ----------------------------------------------------------------------
def test_analysis_is_repeatable(make_subscription):
    subs = [
        make_subscription(name="Netflix", category=Category.STREAMING, amount=25),
        make_subscription(name="netflix", category=Category.STREAMING, amount=15),
        make_subscription(name="Rent", category=Category.RENT, amount=900),
        make_subscription(name="Gym", is_active=False, trial_end_date=NOW + timedelta(days=2)),
    ]
    assert analyzer.analyze_subscriptions(subs, NOW) == analyzer.analyze_subscriptions(subs, NOW)


@pytest.mark.parametrize(
    "score, level",
    [(100, "excellent"), (80, "excellent"), (79, "good"), (60, "good"), (45, "fair"), (10, "poor")],
)
def test_health_levels(score, level):
    assert analyzer.health_level(score) == level


def test_health_summary(make_subscription):
    subs = [
        make_subscription(category=Category.MUSIC, amount=5),
        make_subscription(category=Category.RENT, amount=50),
    ]
    summary = analyzer.health_summary(analyzer.analyze_subscriptions(subs, NOW))
    assert summary.score == 90
    assert summary.level == "excellent"
    assert summary.active_subscriptions == 2
    assert summary.top_category == "rent"
    assert analyzer.health_summary(AnalysisResult()).top_category == "none"


def test_savings_summary(make_subscription):
    subs = [make_subscription(name="Rent", category=Category.RENT, amount=40)]
    summary = analyzer.savings_summary(analyzer.analyze_subscriptions(subs, NOW))
    # review 20 + annual 8 + high cost 16
    assert summary.total_potential_savings == pytest.approx(44)
    assert summary.potential_savings_percentage == pytest.approx(110.0)
    assert analyzer.savings_summary(AnalysisResult()).potential_savings_percentage == 0.0
