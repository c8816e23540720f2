"""
Secret values and log redaction.

A `Secret` wraps a credential so that it never renders as its plain value.
Creating one registers the value with the process-wide `SecretMasker`, a
logging filter that scrubs every registered value from formatted records
before any handler writes them.
"""

import logging
import threading
from typing import Iterable, List, Optional

MASK = "***"


class SecretMasker(logging.Filter):
    """Logging filter replacing registered secret values with ***."""

    def __init__(self):
        super().__init__()
        self._values: List[str] = []
        self._lock = threading.Lock()

    def add_value(self, value: str) -> None:
        if not value or value == MASK:
            return
        with self._lock:
            if value not in self._values:
                self._values.append(value)
                # Longest first so a secret containing another is fully masked
                self._values.sort(key=len, reverse=True)

    def mask(self, text: str) -> str:
        with self._lock:
            values = list(self._values)
        for value in values:
            if value in text:
                text = text.replace(value, MASK)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except Exception:
            # Leave malformed records to the handler's own error reporting
            return True

        masked = self.mask(message)
        if masked != message:
            record.msg = masked
            record.args = None

        if record.exc_text:
            record.exc_text = self.mask(record.exc_text)

        return True

    def install(self, handlers: Optional[Iterable[logging.Handler]] = None) -> None:
        """Attach the masker to the given handlers (default: the root logger's handlers)."""
        if handlers is None:
            handlers = logging.getLogger().handlers
        for handler in handlers:
            if self not in handler.filters:
                handler.addFilter(self)


# Global masker instance
secret_masker = SecretMasker()


def register_secret(value: str) -> None:
    """Register a value to be scrubbed from all log output."""
    secret_masker.add_value(value)


class Secret:
    """
    Write-once secret value.

    `str()` and `repr()` return the mask; the plain value is only available
    through `reveal()`, at the single place it is deliberately written.
    """

    __slots__ = ("_value",)

    def __init__(self, value: Optional[str]):
        object.__setattr__(self, "_value", value or "")
        register_secret(self._value)

    def __setattr__(self, name, value):
        raise AttributeError("Secret values are immutable")

    def reveal(self) -> str:
        return self._value

    def __bool__(self) -> bool:
        return bool(self._value)

    def __eq__(self, other) -> bool:
        if isinstance(other, Secret):
            return self._value == other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)

    def __str__(self) -> str:
        return MASK if self._value else ""

    def __repr__(self) -> str:
        return f"Secret({MASK!r})" if self._value else "Secret('')"
