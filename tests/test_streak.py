"""
Tests for the daily streak transition.
"""
from datetime import date, timedelta

from levelup.services.streak import StreakState, advance_streak

TODAY = date(2026, 3, 10)


def test_first_activity_starts_streak_without_bonus():
    t = advance_streak(StreakState(), TODAY)
    assert t.fired
    assert t.state == StreakState(streak=1, last_active_date=TODAY)
    assert not t.bonus_granted


def test_yesterday_increments_and_grants_bonus():
    t = advance_streak(StreakState(streak=1, last_active_date=TODAY - timedelta(days=1)), TODAY)
    assert t.state.streak == 2
    assert t.state.last_active_date == TODAY
    assert t.bonus_granted


def test_long_streak_keeps_growing():
    t = advance_streak(StreakState(streak=9, last_active_date=TODAY - timedelta(days=1)), TODAY)
    assert t.state.streak == 10
    assert t.bonus_granted


def test_same_day_is_a_no_op():
    current = StreakState(streak=4, last_active_date=TODAY)
    t = advance_streak(current, TODAY)
    assert not t.fired
    assert not t.bonus_granted
    assert t.state is current


def test_gap_resets_to_one():
    t = advance_streak(StreakState(streak=7, last_active_date=TODAY - timedelta(days=2)), TODAY)
    assert t.state.streak == 1
    assert t.fired
    assert not t.bonus_granted


def test_future_last_active_date_resets():
    t = advance_streak(StreakState(streak=3, last_active_date=TODAY + timedelta(days=1)), TODAY)
    assert t.state.streak == 1
    assert not t.bonus_granted
