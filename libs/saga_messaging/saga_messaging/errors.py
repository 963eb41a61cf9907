"""Transport level errors raised by the work-queue and event-log adapters."""


class TransportError(Exception):
    """Base class for broker failures."""


class QueueUnavailable(TransportError):
    """The work queue could not accept a message."""

    def __init__(self, queue: str, reason: str = "not connected"):
        self.queue = queue
        self.reason = reason
        super().__init__(f"Work queue '{queue}' unavailable: {reason}")


class EventLogUnavailable(TransportError):
    """A record could not be durably appended to the event log."""

    def __init__(self, topic: str, reason: str):
        self.topic = topic
        self.reason = reason
        super().__init__(f"Event log topic '{topic}' unavailable: {reason}")
