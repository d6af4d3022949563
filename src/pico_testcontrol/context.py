"""Execution contexts: one node per suite, test class and test method.

Each :class:`ExecutionContext` keeps a weak link to its parent, its resolved
:class:`~pico_testcontrol.config.TestControl`, the scopes it started and
whether it booted the shared container. The tree is only read upwards, for
"already started by an ancestor" questions; nothing walks it downwards.

Lifecycle of a class-level context::

    ctx = ExecutionContext.enter_class_level(get_control(cls))
    ctx.apply_before_class_config()      # boot if needed, start class scopes
    for method in methods:
        mctx = ExecutionContext.enter_method_level(get_control(method), ctx)
        mctx.apply_before_method_config()  # stage + method scopes
        ...
        mctx.apply_after_method_config()
    ctx.apply_after_class_config()       # stop scopes, shut down if owner
"""

import weakref
from dataclasses import replace
from typing import Any, Callable, Iterable, List, Optional, Tuple

from .config import TestControl
from .constants import CONTAINER_MANAGED_SCOPES, DEFAULT_SCOPES, LOGGER, SCOPE_REQUEST, SCOPE_SESSION
from .gatekeeper import ContainerGatekeeper, gatekeeper as _default_gatekeeper
from .project_stage import ProjectStage, get_project_stage, set_project_stage
from .scope import ScopeStack

LEVEL_SUITE = "suite"
LEVEL_CLASS = "class"
LEVEL_METHOD = "method"


def _default_container() -> Any:
    from .api import get_container

    return get_container()


class ExecutionContext:
    def __init__(
        self,
        control: Optional[TestControl],
        parent: Optional["ExecutionContext"] = None,
        *,
        level: str = LEVEL_CLASS,
        name: str = "",
        gatekeeper: Optional[ContainerGatekeeper] = None,
        container_provider: Optional[Callable[[], Any]] = None,
    ) -> None:
        self._parent = weakref.ref(parent) if parent is not None else None
        self.level = level
        self.name = name
        self.explicit = control is not None

        if control is None:
            control = TestControl()
            if parent is not None:
                inherited = parent.control
                control = replace(
                    control,
                    project_stage=inherited.project_stage,
                    start_external_containers=inherited.start_external_containers,
                    log_handler=inherited.log_handler,
                )
        self.control = control
        self.project_stage: ProjectStage = control.project_stage
        self._previous_project_stage: Optional[ProjectStage] = None

        self.container_started_here = False
        self.started_scopes = ScopeStack()
        self.external_containers: Optional[List[Any]] = None

        if gatekeeper is None:
            gatekeeper = parent._gatekeeper if parent is not None else _default_gatekeeper
        if container_provider is None:
            container_provider = parent._container_provider if parent is not None else _default_container
        self._gatekeeper = gatekeeper
        self._container_provider = container_provider

    @classmethod
    def enter_suite_level(cls, control: Optional[TestControl], **kwargs) -> "ExecutionContext":
        return cls(control, None, level=LEVEL_SUITE, **kwargs)

    @classmethod
    def enter_class_level(cls, control: Optional[TestControl], parent: Optional["ExecutionContext"] = None, **kwargs) -> "ExecutionContext":
        return cls(control, parent, level=LEVEL_CLASS, **kwargs)

    @classmethod
    def enter_method_level(cls, control: Optional[TestControl], parent: "ExecutionContext", **kwargs) -> "ExecutionContext":
        return cls(control, parent, level=LEVEL_METHOD, **kwargs)

    @property
    def parent(self) -> Optional["ExecutionContext"]:
        return self._parent() if self._parent is not None else None

    @property
    def start_external_containers(self) -> bool:
        return self.control.start_external_containers

    @property
    def log_handler(self):
        return self.control.log_handler

    def container(self) -> Any:
        return self._container_provider()

    def ancestors(self) -> Iterable["ExecutionContext"]:
        ctx = self.parent
        while ctx is not None:
            yield ctx
            ctx = ctx.parent

    def is_container_started(self) -> bool:
        """True if this context or an ancestor booted the container, or it is running anyway."""
        if self.container_started_here or any(a.container_started_here for a in self.ancestors()):
            return True
        return self._gatekeeper.is_container_started() or self._gatekeeper.suite_running

    def is_scope_started(self, name: str) -> bool:
        return name in self.started_scopes

    def is_scope_active_in_ancestry(self, name: str) -> bool:
        return any(a.is_scope_started(name) for a in self.ancestors())

    def requested_scopes(self) -> List[str]:
        scopes = list(dict.fromkeys(self.control.start_scopes))
        # a root context never starts defaults; its children do, per method
        if not scopes and self.parent is not None:
            scopes = [s for s in DEFAULT_SCOPES if not self.is_scope_active_in_ancestry(s)]
        return scopes

    def class_level_restrictions(self) -> Tuple[str, ...]:
        restricted = list(CONTAINER_MANAGED_SCOPES)
        # legacy: without an explicit control at the root, request/session stay untouched
        if self.parent is None and not self.explicit:
            restricted.extend((SCOPE_REQUEST, SCOPE_SESSION))
        return tuple(restricted)

    def start_scopes(self, container: Any, restricted: Iterable[str] = ()) -> List[str]:
        """Start the requested scopes that no ancestor owns and that are not restricted.

        Each scope is stopped first to force a clean instance. A scope that
        fails to start is logged and skipped; the remaining scopes are
        still started.

        Returns:
            The scope names started by this call, in start order.
        """
        restricted = set(restricted)
        control = container.scope_control()
        started: List[str] = []
        for name in self.requested_scopes():
            if self.is_scope_active_in_ancestry(name) or name in restricted or name in self.started_scopes:
                continue
            try:
                control.stop_scope(name)
                control.start_scope(name)
            except Exception:
                LOGGER.error("failed to start scope '%s'", name, exc_info=True)
                continue
            self.started_scopes.push(name)
            started.append(name)
        if started:
            LOGGER.debug("%r started scopes %s", self, started)
        return started

    def stop_started_scopes(self, container: Any) -> List[str]:
        """Stop every scope this context started, last started first.

        A failure is logged and the next scope is still stopped.

        Returns:
            The scope names popped, in stop order.
        """
        control = container.scope_control()
        stopped: List[str] = []
        while self.started_scopes:
            name = self.started_scopes.pop()
            stopped.append(name)
            try:
                control.stop_scope(name)
            except Exception:
                LOGGER.error("failed to stop scope '%s'", name, exc_info=True)
        return stopped

    def apply_before_class_config(self) -> None:
        container = self.container()
        self._gatekeeper.ensure_booted(self, container)
        self.start_scopes(container, self.class_level_restrictions())

    def apply_after_class_config(self) -> None:
        container = self.container()
        try:
            self.stop_started_scopes(container)
        finally:
            self._gatekeeper.shutdown_if_owner(self, container)

    def apply_before_method_config(self) -> None:
        self._previous_project_stage = get_project_stage()
        set_project_stage(self.project_stage)
        self.start_scopes(self.container())

    def apply_after_method_config(self) -> None:
        try:
            self.stop_started_scopes(self.container())
        finally:
            set_project_stage(self._previous_project_stage)
            self._previous_project_stage = None

    def __repr__(self) -> str:
        label = f" {self.name}" if self.name else ""
        return f"<ExecutionContext {self.level}{label} scopes={list(self.started_scopes)}>"
