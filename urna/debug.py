import logging
import json
from datetime import datetime, timezone


class SessionDebugLogger:
    """Per-session event log for gesture commands, phase changes and errors."""

    def __init__(self, session_id: str, max_events: int = 500):
        self.logger = logging.getLogger("urna.debug")
        self.session_id = session_id
        self.max_events = max_events
        self.events = []  # In-memory event log

    def _append(self, entry: dict):
        self.events.append(entry)
        if len(self.events) > self.max_events:
            del self.events[: len(self.events) - self.max_events]

    def log_command(self, command: str, details: dict = None):
        """Log a logical command emitted by the gesture layer."""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "type": "command",
            "session_id": self.session_id,
            "command": command,
            "details": details or {},
        }
        self._append(entry)
        self.logger.debug("[Command] %s", json.dumps(entry))

    def log_transition(self, old_phase: str, new_phase: str):
        """Log a phase transition of the session state machine."""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "type": "transition",
            "session_id": self.session_id,
            "from": old_phase,
            "to": new_phase,
        }
        self._append(entry)
        self.logger.info("[Session] %s → %s", old_phase, new_phase)

    def log_error(self, code: str, message: str):
        """Log a recoverable error surfaced to the user."""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "type": "error",
            "session_id": self.session_id,
            "code": code,
            "message": message,
        }
        self._append(entry)
        self.logger.warning("[Error] %s: %s", code, message)

    def get_recent_events(self, limit: int = 100) -> list:
        """Return recent debug events."""
        return self.events[-limit:]

    def transitions(self) -> list:
        """Return the ordered list of ``(from, to)`` phase transitions."""
        return [(e["from"], e["to"]) for e in self.events if e["type"] == "transition"]
