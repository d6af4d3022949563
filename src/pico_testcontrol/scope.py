"""Scope bookkeeping.

Provides :class:`ScopeStack`, the per-context record of started scopes,
and the machinery :class:`~pico_testcontrol.container.SimpleContainer` uses
to tie instances to a lifetime: :class:`ContextVarScope`,
:class:`ScopeManager` and :class:`ScopedCaches`.
"""

import contextvars
import inspect
import uuid
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .constants import (
    LOGGER,
    PICO_META,
    SCOPE_APPLICATION,
    SCOPE_CONVERSATION,
    SCOPE_PROTOTYPE,
    SCOPE_REQUEST,
    SCOPE_SESSION,
    SCOPE_SINGLETON,
)
from .exceptions import ScopeError

_CONTAINER_SCOPES = (SCOPE_SINGLETON, SCOPE_APPLICATION, SCOPE_PROTOTYPE)


class ScopeStack:
    """Ordered record of the scopes one execution context started.

    Scopes are popped in the exact reverse of the order they were pushed.
    """

    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: List[str] = []

    def push(self, name: str) -> None:
        self._items.append(name)

    def pop(self) -> str:
        return self._items.pop()

    def __contains__(self, name: object) -> bool:
        return name in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(tuple(self._items))

    def __repr__(self) -> str:
        return f"ScopeStack({self._items!r})"


class ContextVarScope:
    """A scope whose current id lives in a :class:`contextvars.ContextVar`."""

    def __init__(self, var: contextvars.ContextVar) -> None:
        self._var = var

    def get_id(self) -> Any | None:
        return self._var.get()

    def activate(self, scope_id: Any) -> None:
        self._var.set(scope_id)

    def deactivate(self) -> Any | None:
        sid = self._var.get()
        self._var.set(None)
        return sid


class ScopeManager:
    """Registry of context-aware scopes.

    Pre-registers ``request``, ``session`` and ``conversation``; custom
    scopes are added with :meth:`register_scope`.
    """

    def __init__(self) -> None:
        self._scopes: Dict[str, ContextVarScope] = {}
        for name in (SCOPE_REQUEST, SCOPE_SESSION, SCOPE_CONVERSATION):
            self.register_scope(name)

    def register_scope(self, name: str) -> None:
        """Register a custom scope backed by a new ``ContextVar``.

        Raises:
            ScopeError: If *name* is empty or is a container-owned scope name.
        """
        if not isinstance(name, str) or not name:
            raise ScopeError("Scope name must be a non-empty string")
        if name in _CONTAINER_SCOPES:
            raise ScopeError(f"Cannot register reserved scope: '{name}'")
        if name in self._scopes:
            return
        self._scopes[name] = ContextVarScope(contextvars.ContextVar(f"pico_{name}_id", default=None))

    def _impl(self, name: str) -> ContextVarScope:
        impl = self._scopes.get(name)
        if impl is None:
            raise ScopeError(f"Unknown scope: {name}")
        return impl

    def get_id(self, name: str) -> Any | None:
        if name in _CONTAINER_SCOPES:
            return None
        impl = self._scopes.get(name)
        return impl.get_id() if impl else None

    def is_active(self, name: str) -> bool:
        return self.get_id(name) is not None

    def activate(self, name: str) -> str:
        if name in _CONTAINER_SCOPES:
            raise ScopeError(f"Scope '{name}' is managed by the container and cannot be started")
        sid = uuid.uuid4().hex
        self._impl(name).activate(sid)
        return sid

    def deactivate(self, name: str) -> Any | None:
        if name in _CONTAINER_SCOPES:
            raise ScopeError(f"Scope '{name}' is managed by the container and cannot be stopped")
        return self._impl(name).deactivate()

    def names(self) -> Tuple[str, ...]:
        return tuple(self._scopes)


class ComponentCache:
    def __init__(self) -> None:
        self._instances: Dict[object, object] = {}

    def get(self, key):
        return self._instances.get(key)

    def put(self, key, value):
        self._instances[key] = value

    def items(self):
        return list(self._instances.items())


class _NoCache(ComponentCache):
    def get(self, key):
        return None

    def put(self, key, value):
        return

    def items(self):
        return []


def run_cleanup(obj: Any) -> None:
    """Invoke every ``@cleanup`` method of *obj*; failures are logged and skipped."""
    for _, m in inspect.getmembers(obj, predicate=inspect.ismethod):
        meta = getattr(m, PICO_META, {})
        if meta.get("cleanup", False):
            try:
                m()
            except Exception as e:
                LOGGER.warning(
                    "Cleanup method %s.%s failed: %s",
                    type(obj).__name__,
                    getattr(m, "__name__", "<unknown>"),
                    e,
                )


class ScopedCaches:
    """Instance storage for every scope.

    Singleton and application instances share one cache, context scopes get
    one cache per active scope id, prototype instances are never cached.
    """

    def __init__(self) -> None:
        self._singleton = ComponentCache()
        self._by_scope: Dict[str, Dict[Any, ComponentCache]] = {}
        self._no_cache = _NoCache()

    def for_scope(self, scopes: ScopeManager, scope: str) -> ComponentCache:
        if scope in (SCOPE_SINGLETON, SCOPE_APPLICATION):
            return self._singleton
        if scope == SCOPE_PROTOTYPE:
            return self._no_cache

        sid = scopes.get_id(scope)
        if sid is None:
            raise ScopeError(
                f"Cannot resolve component in scope '{scope}': No active scope ID found. "
                f"Is the {scope} scope started for this test?"
            )
        bucket = self._by_scope.setdefault(scope, {})
        if sid not in bucket:
            bucket[sid] = ComponentCache()
        return bucket[sid]

    def cleanup_scope(self, scope_name: str, scope_id: Optional[Any]) -> None:
        bucket = self._by_scope.get(scope_name)
        if bucket and scope_id in bucket:
            for _, obj in bucket.pop(scope_id).items():
                run_cleanup(obj)

    def all_items(self):
        yield from self._singleton.items()
        for bucket in self._by_scope.values():
            for cache in bucket.values():
                yield from cache.items()

    def clear(self) -> None:
        self._singleton = ComponentCache()
        self._by_scope.clear()
