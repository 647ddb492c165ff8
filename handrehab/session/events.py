"""
Event Dispatcher for HANDREHAB

Decouples the training engine from its consumers (display, chart, logging,
audio). The engine only publishes named events; collaborators subscribe
handlers. The engine never listens to its own events.
"""

from typing import Any, Callable, Dict, List


GESTURE_CONFIRMED = 'gesture_confirmed'
ROUND_COMPLETED = 'round_completed'
DIFFICULTY_CHANGED = 'difficulty_changed'
SESSION_STATE_CHANGED = 'session_state_changed'
SESSION_ENDED = 'session_ended'
STATE_CHECK_RESULT = 'state_check_result'
TASK_SUCCEEDED = 'task_succeeded'
ATTITUDE_CONFIRMED = 'attitude_confirmed'

ALL_EVENTS = (
    GESTURE_CONFIRMED,
    ROUND_COMPLETED,
    DIFFICULTY_CHANGED,
    SESSION_STATE_CHANGED,
    SESSION_ENDED,
    STATE_CHECK_RESULT,
    TASK_SUCCEEDED,
    ATTITUDE_CONFIRMED,
)


class EventDispatcher:
    def __init__(self):
        # event name -> handlers, in subscription order
        self.handlers: Dict[str, List[Callable[..., Any]]] = {}

    def subscribe(self, event: str, handler: Callable[..., Any]) -> None:
        self.handlers.setdefault(event, []).append(handler)

    def unsubscribe(self, event: str, handler: Callable[..., Any]) -> None:
        handlers = self.handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def dispatch(self, event: str, **payload) -> None:
        """
        Call every handler subscribed to `event` with the payload as kwargs.

        A failing handler is reported and skipped; the remaining handlers
        still run and the engine tick continues.
        """
        for handler in list(self.handlers.get(event, [])):
            try:
                handler(**payload)
            except Exception as e:
                print(f"⚠ Error in '{event}' handler {getattr(handler, '__name__', handler)}: {e}")


def emit(events, event: str, **payload) -> None:
    """Dispatch on an optional dispatcher."""
    if events is not None:
        events.dispatch(event, **payload)
