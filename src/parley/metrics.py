"""OpenTelemetry instruments for the message gateway."""

from typing import Any

from opentelemetry import metrics
from opentelemetry.metrics import MeterProvider

CHANNEL_ATTRIBUTE = "parley.channel.id"


class GatewayMetrics:
    """Counters and histograms recorded by ``MessageGateway``.

    Tracks:
    - parley.messages.persisted: Messages appended to the store
    - parley.messages.delivered: Per-member broadcast deliveries
    - parley.delivery.failures: Per-member deliveries that failed
    - parley.rejections: Requests refused, by error code
    - parley.sessions.active: Connected sessions
    - parley.broadcast.duration: Persist-and-broadcast time

    Example:
        metrics = GatewayMetrics(meter_provider=provider)
        gateway = MessageGateway(store, registry, metrics=metrics)
    """

    def __init__(self, meter_provider: MeterProvider | None = None) -> None:
        provider = meter_provider or metrics.get_meter_provider()
        meter = provider.get_meter("parley.gateway")

        self._persisted = meter.create_counter(
            "parley.messages.persisted",
            unit="{message}",
            description="Number of messages persisted",
        )
        self._delivered = meter.create_counter(
            "parley.messages.delivered",
            unit="{message}",
            description="Number of messages queued to channel members",
        )
        self._delivery_failures = meter.create_counter(
            "parley.delivery.failures",
            unit="{message}",
            description="Number of member deliveries that failed",
        )
        self._rejections = meter.create_counter(
            "parley.rejections",
            unit="{request}",
            description="Number of session requests refused",
        )
        self._active_sessions = meter.create_up_down_counter(
            "parley.sessions.active",
            unit="{session}",
            description="Number of connected sessions",
        )
        self._broadcast_duration = meter.create_histogram(
            "parley.broadcast.duration",
            unit="s",
            description="Duration of persisting and broadcasting one message",
        )

    def session_opened(self) -> None:
        self._active_sessions.add(1)

    def session_closed(self) -> None:
        self._active_sessions.add(-1)

    def message_persisted(self, channel_id: int) -> None:
        self._persisted.add(1, {CHANNEL_ATTRIBUTE: channel_id})

    def broadcast_finished(
        self, channel_id: int, delivered: int, failed: int, duration: float
    ) -> None:
        attributes: dict[str, Any] = {CHANNEL_ATTRIBUTE: channel_id}
        self._delivered.add(delivered, attributes)
        if failed:
            self._delivery_failures.add(failed, attributes)
        self._broadcast_duration.record(duration, attributes)

    def rejected(self, request: str, code: str) -> None:
        self._rejections.add(1, {"parley.request": request, "error.type": code})
