"""
Tests for the level curve.
"""
import pytest

from levelup.services.progression import (
    level_from_xp,
    level_table,
    progress_in_level,
    total_xp_for_level,
    xp_required_for_level,
)


class TestXpRequiredForLevel:
    def test_first_levels(self):
        assert xp_required_for_level(1) == 50
        assert xp_required_for_level(2) == 174
        assert xp_required_for_level(3) == 361

    def test_strictly_increasing(self):
        steps = [xp_required_for_level(i) for i in range(1, 60)]
        assert all(b > a for a, b in zip(steps, steps[1:]))

    @pytest.mark.parametrize("level", [0, -3])
    def test_rejects_levels_below_one(self, level):
        with pytest.raises(ValueError):
            xp_required_for_level(level)


class TestTotalXpForLevel:
    def test_cumulative(self):
        assert total_xp_for_level(1) == 0
        assert total_xp_for_level(2) == 50
        assert total_xp_for_level(3) == 224
        assert total_xp_for_level(4) == 585

    def test_rejects_levels_below_one(self):
        with pytest.raises(ValueError):
            total_xp_for_level(0)


class TestLevelFromXp:
    @pytest.mark.parametrize("xp,level", [
        (0, 1),
        (15, 1),
        (49, 1),
        (50, 2),
        (223, 2),
        (224, 3),
        (584, 3),
        (585, 4),
    ])
    def test_boundaries(self, xp, level):
        assert level_from_xp(xp) == level

    def test_negative_is_level_one(self):
        assert level_from_xp(-500) == 1

    def test_level_brackets_its_xp(self):
        for xp in range(0, 5000, 37):
            level = level_from_xp(xp)
            assert total_xp_for_level(level) <= xp < total_xp_for_level(level + 1)

    def test_monotonic(self):
        levels = [level_from_xp(xp) for xp in range(0, 3000)]
        assert levels == sorted(levels)


class TestProgressInLevel:
    def test_mid_level(self):
        p = progress_in_level(100)
        assert p.level == 2
        assert p.current == 50
        assert p.required == 174
        assert p.percent == pytest.approx(50 / 174 * 100)

    def test_fresh_subject(self):
        p = progress_in_level(0)
        assert (p.level, p.current, p.required) == (1, 0, 50)
        assert p.percent == 0

    def test_negative_clamped(self):
        assert progress_in_level(-20) == progress_in_level(0)


def test_level_table_rows():
    rows = level_table(3)
    assert rows == [(1, 50, 0), (2, 174, 50), (3, 361, 224)]
