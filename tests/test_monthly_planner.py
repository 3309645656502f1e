import pytest

from monthly_planner import (
    MAX_PLAN_MONTHS,
    build_goal_seek_timeline,
    recommend_monthly_split,
)
from portfolio_rebalancer import Division, Holding, Portfolio, compute_analytics


def _analytics(divisions, required_total, total_current=0.0):
    return {
        "totals": {"invested": 0.0, "current": total_current, "profit": 0.0},
        "divisions": divisions,
        "requiredTotalAddition": required_total,
    }


def _div(did, required, subdivisions=None, target=0.0, current=0.0):
    return {
        "id": did,
        "name": did.upper(),
        "targetPercent": target,
        "current": current,
        "requiredAddition": required,
        "subdivisions": subdivisions or [],
    }


def _sub(sid, required):
    return {"id": sid, "name": sid.upper(), "requiredAddition": required}


def test_timeline_splits_by_remaining_need():
    analytics = _analytics(
        [
            _div("a", 1000.0),
            _div("b", 500.0, [_sub("s1", 300.0), _sub("s2", 200.0)]),
        ],
        1500.0,
    )

    timeline = build_goal_seek_timeline(analytics, 600)

    assert timeline.total_months == 3
    assert [m.total for m in timeline.months] == pytest.approx([600.0, 600.0, 300.0])
    assert timeline.months[-1].cumulative_invested == pytest.approx(1500.0)
    assert timeline.months[-1].remaining_total == pytest.approx(0.0)

    first = timeline.months[0]
    a_alloc, b_alloc = first.allocations
    assert a_alloc.amount == pytest.approx(400.0)
    assert a_alloc.subdivisions == []
    assert b_alloc.amount == pytest.approx(200.0)
    assert [s.amount for s in b_alloc.subdivisions] == pytest.approx([120.0, 80.0])

    last = timeline.months[-1]
    assert [a.amount for a in last.allocations] == pytest.approx([200.0, 100.0])
    assert [s.amount for s in last.allocations[1].subdivisions] == pytest.approx([60.0, 40.0])


def test_timeline_never_exceeds_monthly_amount():
    analytics = _analytics([_div("a", 730.0), _div("b", 270.0), _div("c", 55.5)], 1055.5)

    timeline = build_goal_seek_timeline(analytics, 100)

    for month in timeline.months:
        assert month.total <= 100 + 1e-9
    assert sum(m.total for m in timeline.months) == pytest.approx(1055.5, abs=0.05)


def test_timeline_empty_when_balanced():
    timeline = build_goal_seek_timeline(_analytics([_div("a", 0.0)], 0.0), 500)
    assert timeline.months == []
    assert timeline.is_balanced is True


def test_timeline_empty_for_zero_monthly_amount():
    timeline = build_goal_seek_timeline(_analytics([_div("a", 100.0)], 100.0), 0)
    assert timeline.months == []
    assert timeline.is_balanced is False


def test_timeline_stops_at_month_cap():
    analytics = _analytics([_div("a", 1_000_000.0)], 1_000_000.0)

    timeline = build_goal_seek_timeline(analytics, 1)

    assert timeline.total_months == MAX_PLAN_MONTHS
    assert timeline.months[-1].cumulative_invested == pytest.approx(MAX_PLAN_MONTHS)


def test_timeline_from_real_analytics():
    portfolio = Portfolio(divisions=[
        Division(id="A", name="A", target_percent=50.0, holdings=[Holding(id="h", name="h", current=1000.0)]),
        Division(id="B", name="B", target_percent=50.0),
    ])
    analytics = compute_analytics(portfolio)

    timeline = build_goal_seek_timeline(analytics, 300)

    assert [m.total for m in timeline.months] == pytest.approx([300.0, 300.0, 300.0, 100.0])
    assert sum(m.total for m in timeline.months) == pytest.approx(analytics["requiredTotalAddition"])
    assert timeline.to_dict()["totalMonths"] == 4
    assert timeline.to_dict()["months"][0]["allocations"][0]["id"] == "B"


def test_weighted_split_boosts_gaps():
    analytics = _analytics(
        [_div("a", 0.0, target=50.0, current=800.0), _div("b", 0.0, target=50.0, current=200.0)],
        0.0,
        total_current=1000.0,
    )

    split = recommend_monthly_split(analytics, 1000, mode="weighted", gap_bias=60)

    a_row, b_row = split.allocations
    assert a_row.gap == pytest.approx(-300.0)
    assert a_row.recommended == pytest.approx(200.0)
    assert a_row.note == "Base by target %"
    assert b_row.recommended == pytest.approx(800.0)
    assert b_row.note == "Base + gap boost (60% to gaps)"
    assert split.total_recommended == pytest.approx(1000.0)


def test_weighted_split_full_bias_leaves_overweight_empty():
    analytics = _analytics(
        [_div("a", 0.0, target=50.0, current=800.0), _div("b", 0.0, target=50.0, current=200.0)],
        0.0,
        total_current=1000.0,
    )

    split = recommend_monthly_split(analytics, 1000, gap_bias=250)

    a_row, b_row = split.allocations
    assert a_row.recommended == 0.0
    assert a_row.note == "Over / on target"
    assert b_row.recommended == pytest.approx(1000.0)


def test_split_by_target_when_balanced_or_target_mode():
    analytics = _analytics(
        [_div("a", 0.0, target=60.0, current=600.0), _div("b", 0.0, target=40.0, current=400.0)],
        0.0,
        total_current=1000.0,
    )

    balanced = recommend_monthly_split(analytics, 500)
    assert [r.recommended for r in balanced.allocations] == pytest.approx([300.0, 200.0])
    assert {r.note for r in balanced.allocations} == {"Balanced already"}

    by_target = recommend_monthly_split(analytics, 500, mode="target")
    assert {r.note for r in by_target.allocations} == {"By target %"}
    assert by_target.to_dict()["totalRecommended"] == pytest.approx(500.0)


def test_subdivision_split_uses_the_division_month_share():
    analytics = _analytics([_div("b", 500.0, [_sub("s1", 300.0), _sub("s2", 200.0)])], 500.0)

    timeline = build_goal_seek_timeline(analytics, 200)

    first = timeline.months[0].allocations[0]
    assert first.amount == pytest.approx(200.0)
    assert [s.amount for s in first.subdivisions] == pytest.approx([120.0, 80.0])
    assert sum(s.amount for s in first.subdivisions) == pytest.approx(first.amount)


def test_remaining_total_never_negative_when_targets_exceed_hundred():
    portfolio = Portfolio(divisions=[
        Division(id="A", name="A", target_percent=60.0, holdings=[Holding(id="ha", name="ha", current=900.0)]),
        Division(id="B", name="B", target_percent=60.0, holdings=[Holding(id="hb", name="hb", current=100.0)]),
    ])
    analytics = compute_analytics(portfolio)
    assert analytics["requiredTotalAddition"] == pytest.approx(500.0)

    timeline = build_goal_seek_timeline(analytics, 1000)

    assert [m.total for m in timeline.months] == pytest.approx([800.0])
    assert timeline.months[0].remaining_total == 0.0
