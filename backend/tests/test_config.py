from datetime import timedelta

import pytest
from pydantic import ValidationError

from beautycache.config import Settings


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestTTLPolicy:
    def test_defaults_per_type(self):
        s = _settings()
        assert s.ttl_for("skin") == timedelta(days=7)
        assert s.ttl_for("lifestyle") == timedelta(days=3)
        assert s.ttl_for("comprehensive") == timedelta(hours=12)
        assert s.ttl_for("product_recommendations") == timedelta(days=1)

    def test_unknown_type_uses_default(self):
        s = _settings(cache_ttl_default_s=90)
        assert s.ttl_for("something_else") == timedelta(seconds=90)

    def test_override(self):
        s = _settings(cache_ttl_hair_s=3600)
        assert s.ttl_for("hair") == timedelta(hours=1)

    @pytest.mark.parametrize("value", [0, -60])
    def test_non_positive_ttl_rejected(self, value):
        with pytest.raises(ValidationError):
            _settings(cache_ttl_skin_s=value)


class TestSchedulerSettings:
    def test_defaults(self):
        s = _settings()
        assert s.cache_cleanup_interval_s == 6 * 60 * 60
        assert s.cache_degraded_after_failures == 3

    def test_non_positive_interval_rejected(self):
        with pytest.raises(ValidationError):
            _settings(cache_cleanup_interval_s=0)


def test_log_level_int_falls_back_to_info():
    import logging

    assert _settings(log_level="debug").log_level_int == logging.DEBUG
    assert _settings(log_level="verbose").log_level_int == logging.INFO


def test_allowed_origins_list():
    s = _settings(allowed_origins="http://a.test, http://b.test ,")
    assert s.allowed_origins_list == ["http://a.test", "http://b.test"]
