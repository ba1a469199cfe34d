"""
Exception hierarchy for the wallet signal processor.

The per-event handler maps these onto processing outcomes:
    PositionValidationError -> POISON (redelivery cannot fix it)
    anything else raised     -> RETRY
DuplicateSignalError and NotificationError never reach the handler; the
emitter resolves them locally.
"""


class SignalProcessorError(Exception):
    """Base class for processor errors."""


class PositionValidationError(SignalProcessorError, ValueError):
    """Inbound position event is malformed or violates position invariants."""


class SignalInvariantError(SignalProcessorError):
    """Programming invariant violated (e.g. metrics over an empty wallet set)."""


class DuplicateSignalError(SignalProcessorError):
    """A signal for the same pair/direction already exists inside the cooldown window."""

    def __init__(self, pair: str, direction: str, existing_signal_id: str | None = None) -> None:
        self.pair = pair
        self.direction = direction
        self.existing_signal_id = existing_signal_id
        detail = f" (existing {existing_signal_id})" if existing_signal_id else ""
        super().__init__(f"Signal cooldown conflict for {pair} {direction}{detail}")


class NotificationError(SignalProcessorError):
    """Notification payload could not be handed to the notification transport."""
