import pytest

from jobtrack.services.rate_limiting import (
    DEFAULT_RATE_LIMIT,
    RATE_LIMIT_PRESETS,
    RateLimitConfig,
    RateLimitPreset,
    preset_key,
)


class TestRateLimitPresets:
    """Test suite for the named call-site configurations"""

    def test_login_and_signup_windows(self):
        assert RATE_LIMIT_PRESETS[RateLimitPreset.LOGIN] == RateLimitConfig(
            window_ms=15 * 60 * 1000, max_requests=5
        )
        assert RATE_LIMIT_PRESETS[RateLimitPreset.SIGNUP] == RateLimitConfig(
            window_ms=60 * 60 * 1000, max_requests=3
        )

    def test_oauth_uses_shared_default(self):
        assert RATE_LIMIT_PRESETS[RateLimitPreset.OAUTH] is DEFAULT_RATE_LIMIT

    def test_every_preset_has_a_config(self):
        assert set(RATE_LIMIT_PRESETS) == set(RateLimitPreset)

    def test_preset_key(self):
        assert preset_key(RateLimitPreset.LOGIN, "a@example.com") == "login:a@example.com"
        assert (
            preset_key(RateLimitPreset.OAUTH, "google", "app.example.com")
            == "oauth:google:app.example.com"
        )

    @pytest.mark.parametrize(
        "window_ms,max_requests", [(0, 5), (-1, 5), (1000, 0), (1000, -3)]
    )
    def test_invalid_config_rejected(self, window_ms, max_requests):
        with pytest.raises(ValueError):
            RateLimitConfig(window_ms=window_ms, max_requests=max_requests)

    def test_of_builds_from_timedelta_keywords(self):
        config = RateLimitConfig.of(minutes=30, max_requests=3)
        assert config.window_ms == 1_800_000
        assert config.window.total_seconds() == 1800
