# src/pico_testcontrol/container.py
import inspect
import threading
import typing
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Protocol, Set

from .constants import LOGGER, PICO_META, SCOPE_APPLICATION, SCOPE_PROTOTYPE, SCOPE_SINGLETON
from .exceptions import ScopeError
from .plugins import _iter_input_modules
from .scope import ScopedCaches, ScopeManager, run_cleanup


@dataclass(frozen=True)
class BeanHandle:
    """Container-side descriptor of a registered bean."""

    bean_type: type
    scope: str = SCOPE_SINGLETON
    primary: bool = False

    @property
    def is_dependent(self) -> bool:
        return self.scope == SCOPE_PROTOTYPE


class ScopeControl(Protocol):
    def start_scope(self, name: str) -> None: ...

    def stop_scope(self, name: str) -> None: ...


class ContainerProtocol(Protocol):
    """The container collaborator driven by execution contexts.

    All calls are synchronous. ``boot``/``shutdown`` failures abort the run;
    scope failures are logged by the caller.
    """

    def boot(self) -> None: ...

    def shutdown(self) -> None: ...

    def scope_control(self) -> ScopeControl: ...

    def resolve_instances(self, bean_type: type) -> Set[BeanHandle]: ...

    def create_instance(self, handle: BeanHandle) -> Any: ...

    def dispose_instance(self, handle: BeanHandle, target: Any) -> None: ...

    def inject_fields(self, target: Any) -> Any: ...


def select_bean(handles: Iterable[BeanHandle], bean_type: type) -> BeanHandle:
    """Pick one handle: a primary bean, else the exact type, else the first by name."""
    ordered = sorted(handles, key=lambda h: (h.bean_type.__module__, h.bean_type.__qualname__))
    if not ordered:
        raise LookupError(f"No bean registered for {bean_type!r}")
    for h in ordered:
        if h.primary:
            return h
    for h in ordered:
        if h.bean_type is bean_type:
            return h
    return ordered[0]


class _ContextControl:
    def __init__(self, container: "SimpleContainer") -> None:
        self._container = container

    def start_scope(self, name: str) -> None:
        self._container.scopes.activate(name)

    def stop_scope(self, name: str) -> None:
        sid = self._container.scopes.deactivate(name)
        self._container._caches.cleanup_scope(name, sid)


class SimpleContainer:
    """In-process container used when no other container is installed.

    Beans are plain classes registered with a scope name. Instances are
    created with a no-argument constructor and then field-injected from
    their class annotations.
    """

    def __init__(self) -> None:
        self.scopes = ScopeManager()
        self._caches = ScopedCaches()
        self._beans: Dict[type, BeanHandle] = {}
        self._lock = threading.RLock()
        self.booted = False

    def register(self, cls: type, *, scope: Optional[str] = None, primary: Optional[bool] = None) -> BeanHandle:
        meta = cls.__dict__.get(PICO_META, {})
        scope = scope if scope is not None else meta.get("scope", SCOPE_SINGLETON)
        primary = primary if primary is not None else meta.get("primary", False)
        if scope not in (SCOPE_SINGLETON, SCOPE_APPLICATION, SCOPE_PROTOTYPE):
            self.scopes.register_scope(scope)
        handle = BeanHandle(cls, scope, bool(primary))
        with self._lock:
            self._beans[cls] = handle
        return handle

    def scan(self, modules: Iterable[Any]) -> int:
        count = 0
        for mod in _iter_input_modules(modules):
            for _, obj in inspect.getmembers(mod, inspect.isclass):
                if obj.__dict__.get(PICO_META, {}).get("component") and obj not in self._beans:
                    self.register(obj)
                    count += 1
        return count

    def boot(self) -> None:
        self.booted = True
        LOGGER.debug("SimpleContainer booted with %d bean(s)", len(self._beans))

    def shutdown(self) -> None:
        with self._lock:
            items = list(self._caches.all_items())
            self._caches.clear()
            self.booted = False
        for _, obj in items:
            run_cleanup(obj)
        LOGGER.debug("SimpleContainer shut down; %d instance(s) cleaned up", len(items))

    def scope_control(self) -> ScopeControl:
        return _ContextControl(self)

    def resolve_instances(self, bean_type: type) -> Set[BeanHandle]:
        with self._lock:
            beans = list(self._beans.values())
        out = set()
        for h in beans:
            try:
                if issubclass(h.bean_type, bean_type):
                    out.add(h)
            except TypeError:
                continue
        return out

    def create_instance(self, handle: BeanHandle) -> Any:
        with self._lock:
            cache = self._caches.for_scope(self.scopes, handle.scope)
            inst = cache.get(handle.bean_type)
            if inst is not None:
                return inst
            inst = handle.bean_type()
            cache.put(handle.bean_type, inst)
        self.inject_fields(inst)
        return inst

    def get(self, bean_type: type) -> Any:
        return self.create_instance(select_bean(self.resolve_instances(bean_type), bean_type))

    def dispose_instance(self, handle: BeanHandle, target: Any) -> None:
        run_cleanup(target)

    def inject_fields(self, target: Any) -> Any:
        try:
            hints = typing.get_type_hints(type(target))
        except Exception as e:
            LOGGER.debug("Cannot read annotations of %s: %s", type(target).__name__, e)
            return target
        for name, typ in hints.items():
            if not isinstance(typ, type) or typ is type(target):
                continue
            if getattr(target, name, None) is not None:
                continue
            if not self.resolve_instances(typ):
                continue
            try:
                setattr(target, name, self.get(typ))
            except ScopeError as e:
                LOGGER.debug("Skipping field %s.%s: %s", type(target).__name__, name, e)
        return target
