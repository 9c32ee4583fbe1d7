# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for settings loading.
"""

import pytest

from utils.config import Settings, load_settings


class TestLoadSettings:
    """Environment parsing."""

    def test_defaults(self):
        settings = load_settings({})
        assert settings == Settings()
        assert settings.store_backend == "memory"
        assert settings.redis_url is None
        assert settings.amqp_url is None

    def test_reads_environment(self):
        settings = load_settings({
            "ENVIRONMENT": "staging",
            "STORE_BACKEND": "MongoDB",
            "MONGODB_URI": "mongodb://db:27017/issues",
            "MONGODB_TIMEOUT_MS": "2500",
            "REDIS_URL": "redis://cache:6379",
            "AMQP_URL": "amqp://guest:guest@mq:5672/",
            "BULK_MAX_WORKERS": "8",
            "PUSH_TIMEOUT_SECONDS": "0.5",
            "OTEL_ENABLED": "yes",
        })

        assert settings.environment == "staging"
        assert settings.store_backend == "mongodb"
        assert settings.mongodb_timeout_ms == 2500
        assert settings.redis_url == "redis://cache:6379"
        assert settings.bulk_max_workers == 8
        assert settings.push_timeout_seconds == 0.5
        assert settings.otel_enabled is True

    def test_empty_urls_mean_disabled(self):
        settings = load_settings({"REDIS_URL": "", "AMQP_URL": ""})
        assert settings.redis_url is None
        assert settings.amqp_url is None

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            load_settings({"STORE_BACKEND": "sqlite"})

    def test_worker_bound(self):
        with pytest.raises(ValueError):
            load_settings({"BULK_MAX_WORKERS": "0"})

    def test_production_requires_secret(self):
        with pytest.raises(ValueError):
            load_settings({"ENVIRONMENT": "production"})
        assert load_settings({"ENVIRONMENT": "production", "JWT_SECRET": "s3cret"}).jwt_secret == "s3cret"

    def test_flask_config_keys(self):
        config = Settings(environment="test").to_flask_config()
        assert config["ENVIRONMENT"] == "test"
        assert config["STORE_BACKEND"] == "memory"
        assert "JWT_SECRET" in config
