"""
Base classes for UI output sinks.

The core never writes output itself. Stages (and the CLI host) speak to a
UI sink, which decides what to do with each message:

- Silent: discards everything (the Environment default)
- Capture: records messages, for tests and programmatic callers
- Prefixed: tags messages with a machine name before forwarding
- Basic / Colored: write to the terminal (see basic.py, rich_ui.py)
"""

import dataclasses as _dataclasses
import enum as _enum
import threading as _threading


class Level(_enum.Enum):
    """Severity of a UI message."""

    INFO = "info"
    DETAIL = "detail"
    SUCCESS = "success"
    WARN = "warn"
    ERROR = "error"

    @property
    def is_problem(self) -> bool:
        """Whether the message belongs on the error stream."""
        return self in (Level.WARN, Level.ERROR)


@_dataclasses.dataclass(frozen=True)
class Message:
    """A structured UI message."""

    level: Level
    text: str


class Interface:
    """
    Base class for all UI sinks.

    Usable as is, in which case it discards every message. Implementations
    override `say`; the level helpers route through it.
    """

    def say(self, level: Level, text: str) -> None:  # noqa: ARG002
        """Emit one message."""
        return None

    def info(self, text: str) -> None:
        self.say(Level.INFO, text)

    def detail(self, text: str) -> None:
        self.say(Level.DETAIL, text)

    def success(self, text: str) -> None:
        self.say(Level.SUCCESS, text)

    def warn(self, text: str) -> None:
        self.say(Level.WARN, text)

    def error(self, text: str) -> None:
        self.say(Level.ERROR, text)


class Silent(Interface):
    """A UI that discards every message."""

    def say(self, level: Level, text: str) -> None:  # noqa: ARG002
        return None


class Capture(Interface):
    """
    A UI that records messages instead of displaying them.

    Safe to share between threads running batch actions.
    """

    def __init__(self) -> None:
        self._messages: list[Message] = []
        self._lock = _threading.Lock()

    def say(self, level: Level, text: str) -> None:
        with self._lock:
            self._messages.append(Message(level, text))

    @property
    def messages(self) -> list[Message]:
        with self._lock:
            return list(self._messages)

    def texts(self, level: Level | None = None) -> list[str]:
        """Message texts, optionally filtered by level."""
        return [m.text for m in self.messages if level is None or m.level == level]


class Prefixed(Interface):
    """Forwards messages to another UI, prefixed with a name."""

    def __init__(self, ui: Interface, prefix: str) -> None:
        self._ui = ui
        self._prefix = prefix

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def wrapped(self) -> Interface:
        return self._ui

    def say(self, level: Level, text: str) -> None:
        lines = text.splitlines() or [""]
        self._ui.say(level, "\n".join(f"[{self._prefix}] {line}" for line in lines))
