"""Process-wide entry points: the installed container and state reset."""

from typing import Any, Optional

from . import _state
from .constants import LOGGER


def get_container() -> Any:
    """Return the installed container, installing a :class:`SimpleContainer` on first use."""
    with _state._lock:
        if _state._container is None:
            from .container import SimpleContainer

            _state._container = SimpleContainer()
            LOGGER.debug("No container installed; using SimpleContainer")
        return _state._container


def use_container(container: Optional[Any]) -> Optional[Any]:
    """Install *container* as the process-wide container and return the previous one."""
    with _state._lock:
        previous = _state._container
        _state._container = container
    return previous


def reset() -> None:
    """Forget every piece of process-wide state.

    Clears the installed container, the container gatekeeper, the notifier
    registry, programmatic extension registrations, configured extension
    modules and the current project stage. Intended for test isolation.
    """
    from .gatekeeper import gatekeeper
    from .notification import notifier_registry
    from .project_stage import set_project_stage

    with _state._lock:
        _state._container = None
        _state._extension_modules = ()
        _state._registered_services.clear()
    gatekeeper.reset()
    notifier_registry.clear_all()
    set_project_stage(None)
