"""Pluggable lookup of test-control extensions.

Extensions are classes flagged with
:func:`~pico_testcontrol.decorators.external_container` or
:func:`~pico_testcontrol.decorators.statement_decorator` inside the
configured extension modules, or instances registered with
:func:`register_service`. :func:`load_services` returns them sorted by
ordinal.
"""

import importlib
import inspect
import os
import pkgutil
from typing import Any, Iterable, List, Optional, Protocol, Set, Union

from . import _state
from .constants import ENV_MODULES, LOGGER


class ExternalContainer(Protocol):
    """An independently pluggable system booted alongside the main container.

    Failures raised by :meth:`boot` or :meth:`shutdown` are logged and never
    abort the run.
    """

    ordinal: int

    def boot(self) -> None: ...

    def shutdown(self) -> None: ...


class StatementDecoratorFactory(Protocol):
    """Wraps the before/after phases of a test invocation.

    Either method may return ``None`` to leave the statement unchanged.
    """

    ordinal: int

    def create_before_statement(self, statement: Any, test_class: type, target: Any) -> Optional[Any]: ...

    def create_after_statement(self, statement: Any, test_class: type, target: Any) -> Optional[Any]: ...


def _scan_package(package) -> Iterable[Any]:
    for _, name, _ in pkgutil.walk_packages(package.__path__, package.__name__ + "."):
        yield importlib.import_module(name)


def _iter_input_modules(inputs: Iterable[Any]) -> Iterable[Any]:
    seen: Set[str] = set()
    for it in inputs:
        mod = importlib.import_module(it) if isinstance(it, str) else it
        candidates = [mod]
        if hasattr(mod, "__path__"):
            candidates.extend(_scan_package(mod))
        for sub in candidates:
            name = getattr(sub, "__name__", None)
            if name and name not in seen:
                seen.add(name)
                yield sub


def configure_modules(modules: Iterable[Union[str, Any]]) -> None:
    """Set the modules scanned for flagged extension classes."""
    with _state._lock:
        _state._extension_modules = tuple(modules)


def configured_modules() -> tuple:
    with _state._lock:
        if _state._extension_modules:
            return _state._extension_modules
    env = os.environ.get(ENV_MODULES, "")
    return tuple(m.strip() for m in env.split(",") if m.strip())


def register_service(flag: str, service: Any) -> None:
    """Register an extension instance (or class, instantiated on lookup) under *flag*."""
    with _state._lock:
        _state._registered_services.setdefault(flag, []).append(service)


def ordinal_of(service: Any) -> int:
    value = getattr(service, "ordinal", 0)
    if callable(value):
        value = value()
    return int(value)


def load_services(flag: str, modules: Optional[Iterable[Any]] = None) -> List[Any]:
    """Discover and instantiate the extensions flagged with *flag*.

    Args:
        flag: One of the ``*_FLAG`` constants.
        modules: Modules or module names to scan; defaults to
            :func:`configured_modules`.

    Returns:
        New instances, stably sorted by ordinal ascending (ties keep
        discovery order: scanned modules first, then registrations).
    """
    found: List[Any] = []
    seen_classes: Set[type] = set()
    for mod in _iter_input_modules(configured_modules() if modules is None else modules):
        for _, obj in inspect.getmembers(mod, inspect.isclass):
            if obj in seen_classes:
                continue
            if obj.__dict__.get(flag, False):
                seen_classes.add(obj)
                found.append(obj())

    with _state._lock:
        registered = list(_state._registered_services.get(flag, ()))
    for svc in registered:
        found.append(svc() if inspect.isclass(svc) else svc)

    found = sorted(found, key=ordinal_of)
    LOGGER.debug("Loaded %d service(s) for %s: %s", len(found), flag, [type(s).__name__ for s in found])
    return found
