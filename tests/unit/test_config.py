"""
Unit tests for configuration loading and validation.
"""

import pytest

from processor.legacy_terms_processor.config import (
    ProcessorConfig,
    StreamBackend,
    TopicsConfig,
)
from processor.legacy_terms_processor.events import EventKind, topic_map


class TestProcessorConfig:
    """Tests for ProcessorConfig."""

    def test_defaults(self, monkeypatch):
        for name in ("STREAM_BACKEND", "KAFKA_URL", "STORE_POOL_MAX_SIZE", "CREATE_TERMS_TOPIC"):
            monkeypatch.delenv(name, raising=False)

        config = ProcessorConfig.from_env()

        assert config.stream_backend == StreamBackend.KAFKA
        assert config.kafka.brokers == "localhost:9092"
        assert config.store.pool_max_size == 10
        assert config.topics.terms_created == "terms.notification.created"
        assert config.topics.support == "terms.legacy.processor.action.email.support"
        assert len(config.topics.inbound()) == 9

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("STREAM_BACKEND", "memory")
        monkeypatch.setenv("KAFKA_URL", "broker-1:9093,broker-2:9093")
        monkeypatch.setenv("KAFKA_CLIENT_CERT", "/certs/client.pem")
        monkeypatch.setenv("KAFKA_CLIENT_CERT_KEY", "/certs/client.key")
        monkeypatch.setenv("USER_AGREED_TERMS_TOPIC", "custom.user.agreed")
        monkeypatch.setenv("STORE_POOL_MAX_SIZE", "3")
        monkeypatch.setenv("ERROR_EMAIL_RECIPIENT", "ops@example.com")
        monkeypatch.setenv("HEALTH_ENABLED", "false")

        config = ProcessorConfig.from_env()

        assert config.stream_backend == StreamBackend.MEMORY
        assert config.kafka.brokers == "broker-1:9093,broker-2:9093"
        assert config.kafka.ssl_certfile == "/certs/client.pem"
        assert config.kafka.ssl_keyfile == "/certs/client.key"
        assert config.topics.user_agreed == "custom.user.agreed"
        assert config.store.pool_max_size == 3
        assert config.notification.recipient == "ops@example.com"
        assert config.health.enabled is False

    def test_invalid_backend(self, monkeypatch):
        monkeypatch.setenv("STREAM_BACKEND", "kinesis")

        with pytest.raises(ValueError, match="STREAM_BACKEND"):
            ProcessorConfig.from_env()

    def test_duplicate_inbound_topics_rejected(self):
        config = ProcessorConfig(
            topics=TopicsConfig(terms_created="same", terms_updated="same")
        )

        with pytest.raises(ValueError, match="distinct"):
            config.validate()

    def test_support_topic_must_not_be_inbound(self):
        config = ProcessorConfig(
            topics=TopicsConfig(support="terms.notification.created")
        )

        with pytest.raises(ValueError, match="support topic"):
            config.validate()

    def test_pool_size_must_be_positive(self, monkeypatch):
        monkeypatch.setenv("STORE_POOL_MAX_SIZE", "0")

        with pytest.raises(ValueError, match="STORE_POOL_MAX_SIZE"):
            ProcessorConfig.from_env()


class TestTopicMap:
    """Tests for topic_map()."""

    def test_every_kind_has_one_topic(self):
        mapping = topic_map(TopicsConfig())

        assert set(mapping.values()) == set(EventKind)
        assert mapping["terms.notification.docusign.envelope.updated"] == EventKind.ENVELOPE_UPDATED
