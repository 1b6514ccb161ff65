"""
Event recording sinks. Components and the driver report noteworthy
happenings as (type, reason, message) tuples. Recording is fire-and-forget:
a sink never raises back into the reconciliation cycle.
"""

# Standard
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from threading import Lock
from typing import List, Optional
import abc

# First Party
import alog

# Local
from . import config
from .utils import generate_id

log = alog.use_channel("EVENT")


class EventType(Enum):
    """Enum for the kubernetes event types"""

    NORMAL = "Normal"
    WARNING = "Warning"


@dataclass
class Event:
    """DataClass holding a single recorded event"""

    type: EventType
    reason: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class EventRecorderBase(abc.ABC):
    """Base class for all event sinks"""

    @abc.abstractmethod
    def record(self, event_type: EventType, reason: str, message: str):
        """Record a single event. Implementations must not raise.

        Args:
            event_type:  EventType
                The severity of the event
            reason:  str
                Short CamelCase machine readable reason
            message:  str
                Human readable description
        """


class LoggingEventRecorder(EventRecorderBase):
    """Event sink that only writes events to the log"""

    def record(self, event_type: EventType, reason: str, message: str):
        log_fn = log.warning if event_type == EventType.WARNING else log.info
        log_fn("[%s] %s: %s", event_type.value, reason, message)


class MemoryEventRecorder(EventRecorderBase):
    """Event sink that keeps all events in memory. Used for tests and dry
    runs.
    """

    def __init__(self):
        self._events: List[Event] = []
        self._lock = Lock()

    def record(self, event_type: EventType, reason: str, message: str):
        log.debug2("Recording %s event [%s]: %s", event_type.value, reason, message)
        with self._lock:
            self._events.append(Event(event_type, reason, message))

    @property
    def events(self) -> List[Event]:
        with self._lock:
            return list(self._events)

    def reasons(self, event_type: Optional[EventType] = None) -> List[str]:
        return [
            event.reason
            for event in self.events
            if event_type is None or event.type == event_type
        ]

    def clear(self):
        with self._lock:
            self._events.clear()


class PlatformEventRecorder(EventRecorderBase):
    """Event sink that creates core/v1 Event objects in the cluster attached
    to the resource being reconciled
    """

    def __init__(self, platform_client, involved_object: dict):
        """
        Args:
            platform_client:  PlatformClientBase
                The client used to create the Event objects
            involved_object:  dict
                The manifest of the object the events refer to
        """
        self.platform_client = platform_client
        self.involved_object = involved_object

    def record(self, event_type: EventType, reason: str, message: str):
        metadata = self.involved_object.get("metadata", {})
        namespace = metadata.get("namespace") or "default"
        timestamp = datetime.now(timezone.utc).isoformat()
        event = {
            "apiVersion": "v1",
            "kind": "Event",
            "metadata": {
                "name": f"{metadata.get('name')}.{generate_id().lower()}",
                "namespace": namespace,
            },
            "involvedObject": {
                "apiVersion": self.involved_object.get("apiVersion"),
                "kind": self.involved_object.get("kind"),
                "name": metadata.get("name"),
                "namespace": metadata.get("namespace"),
                "uid": metadata.get("uid"),
            },
            "type": event_type.value,
            "reason": reason,
            "message": message,
            "source": {"component": config.event_component_name},
            "firstTimestamp": timestamp,
            "lastTimestamp": timestamp,
            "count": 1,
        }
        try:
            success, _ = self.platform_client.create(event)
            if not success:
                log.warning("Failed to record event [%s]: %s", reason, message)
        except Exception as err:  # pylint: disable=broad-except
            log.warning("Error recording event [%s]: %s", reason, err, exc_info=True)
