"""
Configuration management for the legacy terms processor.

All configuration is done via environment variables - no config files inside
containers. This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Every inbound topic is distinct; the router relies on topic identity
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that keep existing deployments working
    - New event kinds need a topic here and a contract in schema/contracts.py
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class StreamBackend(Enum):
    """Supported event stream backends."""

    KAFKA = "kafka"
    MEMORY = "memory"


@dataclass(frozen=True)
class KafkaConfig:
    """Kafka connection configuration.

    Attributes:
        brokers: Comma-separated list of broker addresses
        group_id: Consumer group of the processor
        security_protocol: PLAINTEXT, SSL, SASL_PLAINTEXT or SASL_SSL
        ssl_cafile: Path to CA certificate file
        ssl_certfile: Path to client certificate file
        ssl_keyfile: Path to client key file
        sasl_mechanism: SASL mechanism (PLAIN, SCRAM-SHA-256, ...)
        sasl_username: SASL username
        sasl_password: SASL password
        acks: Producer acknowledgment level for failure reports
        auto_offset_reset: Where a new group starts reading
    """

    brokers: str = "localhost:9092"
    group_id: str = "legacy-terms-processor"
    security_protocol: str = "PLAINTEXT"
    ssl_cafile: str | None = None
    ssl_certfile: str | None = None
    ssl_keyfile: str | None = None
    sasl_mechanism: str | None = None
    sasl_username: str | None = None
    sasl_password: str | None = None
    acks: str = "all"
    auto_offset_reset: str = "earliest"

    @classmethod
    def from_env(cls) -> KafkaConfig:
        """Load configuration from environment variables."""
        return cls(
            brokers=os.getenv("KAFKA_URL", "localhost:9092"),
            group_id=os.getenv("KAFKA_GROUP_ID", "legacy-terms-processor"),
            security_protocol=os.getenv("KAFKA_SECURITY_PROTOCOL", "PLAINTEXT"),
            ssl_cafile=os.getenv("KAFKA_SSL_CAFILE"),
            ssl_certfile=os.getenv("KAFKA_CLIENT_CERT"),
            ssl_keyfile=os.getenv("KAFKA_CLIENT_CERT_KEY"),
            sasl_mechanism=os.getenv("KAFKA_SASL_MECHANISM"),
            sasl_username=os.getenv("KAFKA_SASL_USERNAME"),
            sasl_password=os.getenv("KAFKA_SASL_PASSWORD"),
            acks=os.getenv("KAFKA_ACKS", "all"),
            auto_offset_reset=os.getenv("KAFKA_AUTO_OFFSET_RESET", "earliest"),
        )


@dataclass(frozen=True)
class TopicsConfig:
    """Inbound topic per event kind plus the outbound support topic."""

    terms_created: str = "terms.notification.created"
    terms_updated: str = "terms.notification.updated"
    terms_deleted: str = "terms.notification.deleted"
    resource_terms_created: str = "terms.notification.resource.created"
    resource_terms_updated: str = "terms.notification.resource.updated"
    resource_terms_deleted: str = "terms.notification.resource.deleted"
    user_agreed: str = "terms.notification.user.agreed"
    envelope_created: str = "terms.notification.docusign.envelope.created"
    envelope_updated: str = "terms.notification.docusign.envelope.updated"
    support: str = "terms.legacy.processor.action.email.support"

    @classmethod
    def from_env(cls) -> TopicsConfig:
        """Load configuration from environment variables."""
        defaults = cls()
        return cls(
            terms_created=os.getenv("CREATE_TERMS_TOPIC", defaults.terms_created),
            terms_updated=os.getenv("UPDATE_TERMS_TOPIC", defaults.terms_updated),
            terms_deleted=os.getenv("DELETE_TERMS_TOPIC", defaults.terms_deleted),
            resource_terms_created=os.getenv(
                "CREATE_RESOURCE_TERMS_TOPIC", defaults.resource_terms_created
            ),
            resource_terms_updated=os.getenv(
                "UPDATE_RESOURCE_TERMS_TOPIC", defaults.resource_terms_updated
            ),
            resource_terms_deleted=os.getenv(
                "DELETE_RESOURCE_TERMS_TOPIC", defaults.resource_terms_deleted
            ),
            user_agreed=os.getenv("USER_AGREED_TERMS_TOPIC", defaults.user_agreed),
            envelope_created=os.getenv(
                "CREATE_DOCUSIGN_ENVELOPE_TOPIC", defaults.envelope_created
            ),
            envelope_updated=os.getenv(
                "UPDATE_DOCUSIGN_ENVELOPE_TOPIC", defaults.envelope_updated
            ),
            support=os.getenv("TERMS_LEGACY_PROCESSOR_EMAIL_SUPPORT_TOPIC", defaults.support),
        )

    def inbound(self) -> list[str]:
        """All topics the processor consumes, in declaration order."""
        return [
            self.terms_created,
            self.terms_updated,
            self.terms_deleted,
            self.resource_terms_created,
            self.resource_terms_updated,
            self.resource_terms_deleted,
            self.user_agreed,
            self.envelope_created,
            self.envelope_updated,
        ]


@dataclass(frozen=True)
class StoreConfig:
    """Legacy relational store configuration.

    Attributes:
        database: Database path or DSN passed to the driver
        pool_max_size: Maximum connections held by the pool
        busy_timeout_ms: Lock wait before a statement fails
        create_schema: Create the legacy tables on startup (local development)
    """

    database: str = "legacy_terms.db"
    pool_max_size: int = 10
    busy_timeout_ms: int = 5000
    create_schema: bool = False

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Load configuration from environment variables."""
        return cls(
            database=os.getenv("STORE_DATABASE", "legacy_terms.db"),
            pool_max_size=int(os.getenv("STORE_POOL_MAX_SIZE", "10")),
            busy_timeout_ms=int(os.getenv("STORE_BUSY_TIMEOUT_MS", "5000")),
            create_schema=_env_bool("STORE_CREATE_SCHEMA", "false"),
        )


@dataclass(frozen=True)
class NotificationConfig:
    """Failure report settings.

    Attributes:
        recipient: Address that receives failure reports
        sender: Address failure reports are sent from
        originator: Originator stamped on published envelopes
        terms_of_use_subject: Subject for terms of use failures
        resource_terms_subject: Subject for resource terms failures
        user_terms_of_use_subject: Subject for user agreement failures
        docusign_envelope_subject: Subject for envelope failures
    """

    recipient: str = "test-support@topcoder.com"
    sender: str = "sender@topcoder.com"
    originator: str = "legacy-terms-processor"
    terms_of_use_subject: str = "Terms of use error subject"
    resource_terms_subject: str = "Resource Terms error subject"
    user_terms_of_use_subject: str = "User terms of use error subject"
    docusign_envelope_subject: str = "Docusign Envelope error subject"

    @classmethod
    def from_env(cls) -> NotificationConfig:
        """Load configuration from environment variables."""
        defaults = cls()
        return cls(
            recipient=os.getenv("ERROR_EMAIL_RECIPIENT", defaults.recipient),
            sender=os.getenv("ERROR_EMAIL_SENDER", defaults.sender),
            originator=os.getenv("KAFKA_MESSAGE_ORIGINATOR", defaults.originator),
            terms_of_use_subject=os.getenv(
                "TERMS_OF_USE_ERROR_EMAIL_SUBJECT", defaults.terms_of_use_subject
            ),
            resource_terms_subject=os.getenv(
                "RESOURCE_TERMS_ERROR_EMAIL_SUBJECT", defaults.resource_terms_subject
            ),
            user_terms_of_use_subject=os.getenv(
                "USER_TERMS_OF_USE_ERROR_EMAIL_SUBJECT", defaults.user_terms_of_use_subject
            ),
            docusign_envelope_subject=os.getenv(
                "DOCUSIGN_ENVELOPE_ERROR_EMAIL_SUBJECT", defaults.docusign_envelope_subject
            ),
        )


@dataclass(frozen=True)
class ApplierConfig:
    """Applier loop configuration.

    Attributes:
        queue_size: Records buffered per partition worker before the consumer waits
    """

    queue_size: int = 100

    @classmethod
    def from_env(cls) -> ApplierConfig:
        """Load configuration from environment variables."""
        return cls(queue_size=int(os.getenv("APPLIER_QUEUE_SIZE", "100")))


@dataclass(frozen=True)
class HealthConfig:
    """Health endpoint configuration."""

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 3000

    @classmethod
    def from_env(cls) -> HealthConfig:
        """Load configuration from environment variables."""
        return cls(
            enabled=_env_bool("HEALTH_ENABLED", "true"),
            host=os.getenv("HEALTH_HOST", "0.0.0.0"),
            port=int(os.getenv("HEALTH_PORT", "3000")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ProcessorConfig:
    """Complete processor configuration.

    Attributes:
        stream_backend: Which event stream backend to use
        kafka: Kafka configuration
        topics: Topic names
        store: Legacy store configuration
        notification: Failure report configuration
        applier: Applier configuration
        health: Health endpoint configuration
        observability: Logging configuration
    """

    stream_backend: StreamBackend = StreamBackend.KAFKA
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    topics: TopicsConfig = field(default_factory=TopicsConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    notification: NotificationConfig = field(default_factory=NotificationConfig)
    applier: ApplierConfig = field(default_factory=ApplierConfig)
    health: HealthConfig = field(default_factory=HealthConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ProcessorConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        backend_str = os.getenv("STREAM_BACKEND", "kafka").lower()
        try:
            stream_backend = StreamBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid STREAM_BACKEND '{backend_str}'. Must be one of: kafka, memory"
            ) from None

        config = cls(
            stream_backend=stream_backend,
            kafka=KafkaConfig.from_env(),
            topics=TopicsConfig.from_env(),
            store=StoreConfig.from_env(),
            notification=NotificationConfig.from_env(),
            applier=ApplierConfig.from_env(),
            health=HealthConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.stream_backend == StreamBackend.KAFKA and not self.kafka.brokers:
            raise ValueError("KAFKA_URL is required when STREAM_BACKEND=kafka")

        inbound = self.topics.inbound()
        if len(set(inbound)) != len(inbound):
            raise ValueError("Inbound topics must be distinct")
        if self.topics.support in inbound:
            raise ValueError("The support topic must not be one of the inbound topics")

        if self.store.pool_max_size < 1:
            raise ValueError("STORE_POOL_MAX_SIZE must be at least 1")
        if self.applier.queue_size < 1:
            raise ValueError("APPLIER_QUEUE_SIZE must be at least 1")

        if bool(self.kafka.ssl_certfile) != bool(self.kafka.ssl_keyfile):
            logger.warning(
                "Only one of KAFKA_CLIENT_CERT / KAFKA_CLIENT_CERT_KEY is set; "
                "client certificate authentication is disabled"
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Processor configuration loaded",
            extra={
                "stream_backend": self.stream_backend.value,
                "kafka_brokers": self.kafka.brokers,
                "kafka_group_id": self.kafka.group_id,
                "inbound_topics": self.topics.inbound(),
                "support_topic": self.topics.support,
                "store_database": self.store.database,
                "pool_max_size": self.store.pool_max_size,
                "health_port": self.health.port if self.health.enabled else None,
                "log_level": self.observability.log_level,
            },
        )
