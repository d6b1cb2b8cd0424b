"""
Unit tests for TelemetryConfig.
"""

import pytest

from chat_telemetry.config import TelemetryConfig
from chat_telemetry.exceptions import ConfigurationError
from chat_telemetry.observability import DropPolicy


class TestTelemetryConfigDefaults:
    """Test default and environment-driven values."""

    def test_defaults(self):
        config = TelemetryConfig()
        assert config.service_name == "chatbot"
        assert config.environment == "development"
        assert config.mongo_uri == ""
        assert config.use_mongo is False
        assert config.db_name == "chat_telemetry"
        assert config.events_collection == "message_events"
        assert config.max_field_length == 1024
        assert config.drop_policy is DropPolicy.DROP_OLDEST
        config.validate()

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("TELEMETRY_SERVICE_NAME", "support-bot")
        monkeypatch.setenv("TELEMETRY_ENVIRONMENT", "production")
        monkeypatch.setenv("MONGO_URI", "mongodb://localhost:27017")
        monkeypatch.setenv("TELEMETRY_EXPORT_BUFFER_SIZE", "500")
        monkeypatch.setenv("TELEMETRY_EXPORT_DROP_POLICY", "drop_newest")

        config = TelemetryConfig()
        assert config.service_name == "support-bot"
        assert config.environment == "production"
        assert config.use_mongo is True
        assert config.export_buffer_size == 500
        assert config.drop_policy is DropPolicy.DROP_NEWEST

    def test_explicit_arguments_override_environment(self, monkeypatch):
        monkeypatch.setenv("TELEMETRY_SERVICE_NAME", "from-env")
        config = TelemetryConfig(service_name="explicit", export_max_retries=0)
        assert config.service_name == "explicit"
        assert config.export_max_retries == 0

    def test_non_integer_environment_value(self, monkeypatch):
        monkeypatch.setenv("TELEMETRY_MAX_FIELD_LENGTH", "lots")
        with pytest.raises(ConfigurationError) as exc_info:
            TelemetryConfig()
        assert exc_info.value.config_key == "TELEMETRY_MAX_FIELD_LENGTH"


class TestTelemetryConfigValidation:
    """Test validate() rejections."""

    @pytest.mark.parametrize(
        "kwargs,key",
        [
            ({"max_field_length": 0}, "max_field_length"),
            ({"export_buffer_size": 0}, "export_buffer_size"),
            ({"export_batch_size": 0}, "export_batch_size"),
            ({"export_buffer_size": 10, "export_batch_size": 20}, "export_batch_size"),
            ({"export_max_retries": -1}, "export_max_retries"),
            ({"export_drop_policy": "drop_everything"}, "export_drop_policy"),
        ],
    )
    def test_invalid_values(self, kwargs, key):
        config = TelemetryConfig(**kwargs)
        with pytest.raises(ConfigurationError) as exc_info:
            config.validate()
        assert exc_info.value.config_key == key
