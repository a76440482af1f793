"""Level curve, multipliers and award validation."""

from datetime import datetime, timedelta, timezone

import pytest

from careerxp.gamification.constants import XPSource
from careerxp.gamification.exceptions import ExceedsSourceMaximum, InvalidAmount, MissingSourceId
from careerxp.gamification.xp_calculator import (
    LEVEL_THRESHOLDS,
    compute_level,
    compute_profile,
    level_info,
    level_progress,
    next_milestone,
    profile_tier,
    streak_bonus,
    time_multiplier,
    validate_award,
    xp_for_level,
    xp_for_source,
)

NOW = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)


class TestComputeLevel:
    """Levels 1-10 from the table, the square curve afterwards."""

    def test_level_1_at_zero_xp(self):
        assert compute_level(0) == 1

    def test_negative_xp_is_level_1(self):
        assert compute_level(-50) == 1

    def test_boundary_99_is_still_level_1(self):
        assert compute_level(99) == 1

    def test_level_2_at_100(self):
        assert compute_level(100) == 2

    def test_level_10_at_table_end(self):
        assert compute_level(3200) == 10
        assert compute_level(4999) == 10

    def test_curve_takes_over_at_level_11(self):
        assert compute_level(5000) == 11
        assert compute_level(6049) == 11
        assert compute_level(6050) == 12

    def test_table_is_monotonic(self):
        required = [row["xp_required"] for row in LEVEL_THRESHOLDS]
        assert required == sorted(required)
        assert len(set(required)) == len(required)

    @pytest.mark.parametrize("xp", [0, 1, 99, 100, 249, 3200, 4999, 5000, 12345, 250_000])
    def test_level_brackets_total_xp(self, xp):
        """xp_for_level(L) <= x < xp_for_level(L + 1) for every x."""
        level = compute_level(xp)
        assert xp_for_level(level) <= xp < xp_for_level(level + 1)


class TestLevelProgress:
    def test_start_of_level_is_zero(self):
        assert level_progress(100, 2) == 0.0

    def test_partial_progress(self):
        assert level_progress(150, 2) == pytest.approx(1 / 3)

    def test_clamped_to_one(self):
        assert level_progress(10_000, 2) == 1.0

    @pytest.mark.parametrize("xp", range(240, 261))
    def test_progress_across_level_three_boundary(self, xp):
        level = compute_level(xp)
        progress = level_progress(xp, level)
        if xp < 250:
            assert level == 2
            assert progress == pytest.approx((xp - 100) / 150)
        else:
            assert level == 3
            assert progress == pytest.approx((xp - 250) / 200)

    def test_progress_rises_within_level_and_resets_on_crossing(self):
        sweep = [(compute_level(xp), level_progress(xp, compute_level(xp))) for xp in range(240, 261)]
        for (level_a, progress_a), (level_b, progress_b) in zip(sweep, sweep[1:]):
            if level_a == level_b:
                assert progress_b > progress_a
            else:
                assert level_b == level_a + 1
                assert progress_b == 0.0
                assert progress_a > 0.9

    def test_level_info_titles(self):
        assert level_info(1)["title"] == "Newcomer"
        assert level_info(10)["title"] == "Principal"
        assert level_info(11)["title"] == "Level 11 Master"


class TestProfileTier:
    @pytest.mark.parametrize(
        ("xp", "tier"),
        [(0, "BRONZE"), (199, "BRONZE"), (200, "SILVER"), (500, "GOLD"), (1000, "PLATINUM"), (2000, "DIAMOND")],
    )
    def test_thresholds(self, xp, tier):
        assert profile_tier(xp) == tier

    def test_next_milestone_prefers_nearest(self):
        """At 150 XP the Silver tier (200) comes before level 3 (250)."""
        milestone = next_milestone(150)
        assert milestone["type"] == "tier"
        assert milestone["name"] == "Silver"
        assert milestone["xp_remaining"] == 50

    def test_compute_profile(self):
        profile = compute_profile(300)
        assert profile["level"] == 3
        assert profile["tier"] == "SILVER"
        assert profile["next_level_xp"] == 450
        assert profile["xp_to_next_level"] == 150


class TestMultipliers:
    def test_streak_bonus_below_three_days(self):
        assert streak_bonus(2) == 0

    def test_streak_bonus_grows_and_caps(self):
        assert streak_bonus(3) == 5
        assert streak_bonus(10) == 25
        assert streak_bonus(30) == 50

    def test_time_bonus_inside_window(self):
        assert time_multiplier(NOW - timedelta(hours=2), NOW) == pytest.approx(1.10)

    def test_no_time_bonus_too_soon(self):
        assert time_multiplier(NOW - timedelta(minutes=30), NOW) == 1.0

    def test_no_time_bonus_after_a_day(self):
        assert time_multiplier(NOW - timedelta(hours=25), NOW) == 1.0

    def test_no_time_bonus_without_history(self):
        assert time_multiplier(None, NOW) == 1.0

    def test_naive_last_activity_treated_as_utc(self):
        naive = (NOW - timedelta(hours=3)).replace(tzinfo=None)
        assert time_multiplier(naive, NOW) == pytest.approx(1.10)


class TestXPForSource:
    def test_default_reward(self):
        assert xp_for_source(XPSource.CV_ANALYSIS.value) == 50

    def test_configured_rewards_override_defaults(self):
        assert xp_for_source("CV_ANALYSIS", {"CV_ANALYSIS": 80}) == 80

    def test_unknown_source_is_zero(self):
        assert xp_for_source("NOT_A_SOURCE") == 0
        assert xp_for_source("CV_ANALYSIS", {}) == 0


class TestValidateAward:
    def test_negative_amount_rejected(self):
        with pytest.raises(InvalidAmount):
            validate_award(XPSource.DAILY_LOGIN, -1)

    def test_above_source_maximum_rejected(self):
        with pytest.raises(ExceedsSourceMaximum) as exc_info:
            validate_award(XPSource.CV_UPLOAD, 26, "cv-1")
        assert exc_info.value.maximum == 25

    def test_configured_maximums_override_defaults(self):
        validate_award(XPSource.CV_UPLOAD, 40, "cv-1", maximums={"CV_UPLOAD": 40})

    def test_per_object_source_requires_id(self):
        with pytest.raises(MissingSourceId):
            validate_award(XPSource.CV_ANALYSIS, 50)

    def test_admin_adjustment_has_no_maximum(self):
        validate_award(XPSource.ADMIN_ADJUSTMENT, 10_000)
