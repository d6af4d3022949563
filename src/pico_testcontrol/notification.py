"""Run notification: descriptions, listeners, notifiers and the notifier registry."""

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from .constants import LOGGER


@dataclass(frozen=True)
class Description:
    """Identifies a test class (``method_name is None``) or a test method."""

    class_name: str
    method_name: Optional[str] = None

    @classmethod
    def for_class(cls, test_class: type) -> "Description":
        return cls(f"{test_class.__module__}.{test_class.__qualname__}")

    @classmethod
    def for_method(cls, test_class: type, method_name: str) -> "Description":
        return cls(f"{test_class.__module__}.{test_class.__qualname__}", method_name)

    @property
    def display_name(self) -> str:
        return f"{self.class_name}::{self.method_name}" if self.method_name else self.class_name


@dataclass(frozen=True)
class Failure:
    description: Description
    exception: Optional[BaseException] = None
    text: str = ""

    @property
    def message(self) -> str:
        return self.text or str(self.exception)


class RunListener:
    """Base listener; override the events of interest."""

    def test_started(self, description: Description) -> None:
        pass

    def test_finished(self, description: Description) -> None:
        pass

    def test_failure(self, failure: Failure) -> None:
        pass

    def test_ignored(self, description: Description) -> None:
        pass


class LogRunListener(RunListener):
    def test_started(self, description: Description) -> None:
        LOGGER.info("[run] %s", description.display_name)

    def test_finished(self, description: Description) -> None:
        LOGGER.info("[finished] %s", description.display_name)

    def test_failure(self, failure: Failure) -> None:
        LOGGER.info("[failed] %s: %s", failure.description.display_name, failure.message)

    def test_ignored(self, description: Description) -> None:
        LOGGER.info("[ignored] %s", description.display_name)


class RunNotifier:
    """Fans test events out to the registered listeners.

    A listener that raises is removed and the failure is logged; the other
    listeners still receive the event.
    """

    def __init__(self) -> None:
        self._listeners: List[RunListener] = []
        self._lock = threading.Lock()

    def add_listener(self, listener: RunListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: RunListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    @property
    def listeners(self) -> List[RunListener]:
        with self._lock:
            return list(self._listeners)

    def _fire(self, event: str, payload: Any) -> None:
        for listener in self.listeners:
            try:
                getattr(listener, event)(payload)
            except Exception:
                LOGGER.warning("Run listener %r failed on %s; removing it", listener, event, exc_info=True)
                self.remove_listener(listener)

    def fire_test_started(self, description: Description) -> None:
        self._fire("test_started", description)

    def fire_test_finished(self, description: Description) -> None:
        self._fire("test_finished", description)

    def fire_test_failure(self, failure: Failure) -> None:
        self._fire("test_failure", failure)

    def fire_test_ignored(self, description: Description) -> None:
        self._fire("test_ignored", description)


class NotifierRegistry:
    """Remembers which notifiers already carry a completion listener.

    Notifiers are keyed by identity, never by content. The check and the
    insert happen under one lock, so racing runners attach exactly one
    listener per notifier. :meth:`clear_all` forgets every notifier and
    detaches the listeners this registry attached.
    """

    def __init__(self, listener_factory: Callable[[], RunListener] = LogRunListener) -> None:
        self._lock = threading.Lock()
        # id -> (notifier, listener); the notifier reference keeps its id from being reused
        self._registered: Dict[int, Tuple[Any, RunListener]] = {}
        self._listener_factory = listener_factory

    def register_once(self, notifier: Any) -> bool:
        """Attach a listener to *notifier* unless one was attached already.

        Returns:
            ``True`` if this call attached the listener.
        """
        identity = id(notifier)
        with self._lock:
            if identity in self._registered:
                return False
            listener = self._listener_factory()
            notifier.add_listener(listener)
            self._registered[identity] = (notifier, listener)
        return True

    def is_registered(self, notifier: Any) -> bool:
        with self._lock:
            return id(notifier) in self._registered

    def clear_all(self) -> None:
        with self._lock:
            entries = list(self._registered.values())
            self._registered.clear()
        for notifier, listener in entries:
            remove = getattr(notifier, "remove_listener", None)
            if callable(remove):
                remove(listener)

    def __len__(self) -> int:
        with self._lock:
            return len(self._registered)


notifier_registry = NotifierRegistry()
