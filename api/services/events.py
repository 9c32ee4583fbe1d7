# SPDX-License-Identifier: Apache-2.0

"""
In-process domain event bus.

Lifecycle services publish after their state change has been persisted;
consumers (notification fan-out, the AMQP forwarder) are registered at
startup. A failing consumer never fails the publisher or the other
consumers.
"""

import logging
import threading
from typing import List, Protocol

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from models.events import BaseDomainEvent

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class EventConsumer(Protocol):
    """Anything that reacts to domain events."""

    def handle(self, event: BaseDomainEvent) -> None:
        ...


class EventBus:
    """Synchronous fan-out of domain events to registered consumers."""

    def __init__(self):
        self._consumers: List[EventConsumer] = []
        self._lock = threading.Lock()

    def register(self, consumer: EventConsumer) -> None:
        """Register a consumer; consumers run in registration order."""
        with self._lock:
            self._consumers.append(consumer)

    def unregister(self, consumer: EventConsumer) -> None:
        with self._lock:
            if consumer in self._consumers:
                self._consumers.remove(consumer)

    @property
    def consumers(self) -> List[EventConsumer]:
        with self._lock:
            return list(self._consumers)

    def publish(self, event: BaseDomainEvent) -> int:
        """
        Deliver an event to every consumer.

        Args:
            event: Domain event to deliver

        Returns:
            Number of consumers that handled the event without raising
        """
        delivered = 0

        with tracer.start_as_current_span("events.publish") as span:
            span.set_attributes({
                "event.id": event.event_id,
                "event.type": event.type,
                "event.issue_id": event.issue_id or "",
            })

            for consumer in self.consumers:
                try:
                    consumer.handle(event)
                    delivered += 1
                except Exception as e:
                    span.record_exception(e)
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    logger.error(
                        "Event consumer failed",
                        extra={
                            "extra_fields": {
                                "event_id": event.event_id,
                                "event_type": event.type,
                                "consumer": type(consumer).__name__,
                                "error": str(e)
                            }
                        },
                        exc_info=True
                    )

            span.set_attribute("event.delivered", delivered)

        return delivered
