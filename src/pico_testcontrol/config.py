"""Test-control settings.

:class:`TestControl` is the immutable record each execution level consumes:
which scopes to start, which project stage to run under, whether external
containers are booted and which log handler to attach. It is declared on
test classes and methods with :func:`~pico_testcontrol.decorators.control`
or loaded from a JSON/YAML tree with :func:`load_control`.
"""

import importlib
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Tuple, Type

from .config_sources import TreeSource, source_for_path
from .constants import PICO_CONTROL
from .exceptions import ConfigurationError
from .project_stage import ProjectStage


@dataclass(frozen=True)
class TestControl:
    """Resolved test-control settings of one execution level.

    Attributes:
        start_scopes: Scope names to start; empty means the default
            behaviour (session and request scopes, unless an ancestor
            already started them).
        project_stage: Stage made current while test methods run.
        start_external_containers: Whether the level that boots the
            container also boots the discovered external containers.
        log_handler: Optional :class:`logging.Handler` subclass attached
            to the package logger by the class runner.
    """

    __test__ = False

    start_scopes: Tuple[str, ...] = field(default=())
    project_stage: ProjectStage = ProjectStage.UNIT_TEST
    start_external_containers: bool = True
    log_handler: Optional[Type[logging.Handler]] = None

    def __post_init__(self) -> None:
        scopes = self.start_scopes
        if isinstance(scopes, str):
            scopes = (scopes,)
        object.__setattr__(self, "start_scopes", tuple(scopes))
        object.__setattr__(self, "project_stage", ProjectStage.of(self.project_stage))
        handler = self.log_handler
        if handler is not None and not (isinstance(handler, type) and issubclass(handler, logging.Handler)):
            raise ConfigurationError(f"log_handler must be a logging.Handler subclass, got {handler!r}")


def get_control(obj: Any) -> Optional[TestControl]:
    """Return the :class:`TestControl` declared directly on *obj*, or ``None``.

    Only the object's own ``__dict__`` is consulted for classes, so a
    subclass does not silently re-declare its base class' control.
    """
    if isinstance(obj, type):
        return obj.__dict__.get(PICO_CONTROL)
    fn = getattr(obj, "__func__", obj)
    return getattr(fn, PICO_CONTROL, None)


def _import_dotted(path: str) -> Any:
    mod_name, _, attr = path.rpartition(".")
    if not mod_name:
        raise ConfigurationError(f"Expected a dotted import path, got '{path}'")
    try:
        return getattr(importlib.import_module(mod_name), attr)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Cannot import '{path}': {e}")


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("1", "true", "yes", "on"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(f"Expected a boolean, got {value!r}")


def control_from_tree(tree: Mapping[str, Any]) -> TestControl:
    """Build a :class:`TestControl` from a nested mapping.

    A ``testcontrol`` sub-tree is used when present, otherwise the mapping
    itself. Recognised keys: ``start_scopes`` (list or comma-separated
    string), ``project_stage``, ``start_external_containers`` and
    ``log_handler`` (dotted import path).

    Raises:
        ConfigurationError: On unknown keys or invalid values.
    """
    node = tree.get("testcontrol", tree) if isinstance(tree, Mapping) else None
    if not isinstance(node, Mapping):
        raise ConfigurationError("testcontrol configuration must be a mapping")

    known = {"start_scopes", "project_stage", "start_external_containers", "log_handler"}
    unknown = set(node) - known
    if unknown:
        raise ConfigurationError(f"Unknown testcontrol keys: {sorted(unknown)}")

    kwargs = {}
    scopes = node.get("start_scopes")
    if scopes is not None:
        if isinstance(scopes, str):
            scopes = [s.strip() for s in scopes.split(",") if s.strip()]
        if not isinstance(scopes, Iterable):
            raise ConfigurationError(f"start_scopes must be a list, got {scopes!r}")
        kwargs["start_scopes"] = tuple(str(s) for s in scopes)
    if node.get("project_stage") is not None:
        kwargs["project_stage"] = ProjectStage.of(node["project_stage"])
    if node.get("start_external_containers") is not None:
        kwargs["start_external_containers"] = _as_bool(node["start_external_containers"])
    if node.get("log_handler"):
        handler = node["log_handler"]
        kwargs["log_handler"] = _import_dotted(handler) if isinstance(handler, str) else handler
    return TestControl(**kwargs)


def load_control(source: Any) -> TestControl:
    """Load a :class:`TestControl` from a file path or a :class:`TreeSource`."""
    src = source if isinstance(source, TreeSource) else source_for_path(source)
    return control_from_tree(src.get_tree())
