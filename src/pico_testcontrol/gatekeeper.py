"""Process-wide ownership of the shared container.

The :class:`ContainerGatekeeper` records whether the container is booted
and whether a suite currently owns it. Only the execution context that
performed the boot may shut the container down, and never while a suite
is running.
"""

import threading
from typing import Any

from .constants import EXTERNAL_CONTAINER_FLAG, LOGGER
from .exceptions import ContainerBootError, describe
from .plugins import load_services


class ContainerGatekeeper:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._container_started = False
        self._suite_running = False

    def is_container_started(self) -> bool:
        with self._lock:
            return self._container_started

    def set_container_started(self, started: bool) -> None:
        with self._lock:
            self._container_started = bool(started)

    @property
    def suite_running(self) -> bool:
        with self._lock:
            return self._suite_running

    def begin_suite(self) -> None:
        with self._lock:
            self._suite_running = True

    def end_suite(self) -> None:
        with self._lock:
            self._suite_running = False

    def is_stop_container_allowed(self) -> bool:
        return not self.suite_running

    def ensure_booted(self, context: Any, container: Any) -> bool:
        """Boot *container* on behalf of *context* unless something already did.

        The check and the boot happen under one lock, so concurrent callers
        cannot both boot. External containers are booted afterwards when
        the context asks for them.

        Returns:
            ``True`` if this call booted the container.

        Raises:
            ContainerBootError: If ``container.boot()`` fails.
        """
        with self._lock:
            if context.is_container_started():
                return False
            LOGGER.debug("Booting container for %s", context)
            try:
                container.boot()
            except Exception as e:
                raise ContainerBootError("boot", e) from e
            self._container_started = True
            context.container_started_here = True
        self.boot_external_containers(context)
        return True

    def boot_external_containers(self, context: Any) -> None:
        if not context.start_external_containers or context.external_containers is not None:
            return
        context.external_containers = load_services(EXTERNAL_CONTAINER_FLAG)
        for external in context.external_containers:
            try:
                external.boot()
            except Exception:
                LOGGER.warning("booting %s failed", describe(type(external)), exc_info=True)

    def shutdown_external_containers(self, context: Any) -> None:
        for external in context.external_containers or ():
            try:
                external.shutdown()
            except Exception:
                LOGGER.warning("shutting down %s failed", describe(type(external)), exc_info=True)

    def shutdown_if_owner(self, context: Any, container: Any) -> bool:
        """Shut *container* down if *context* booted it and no suite owns it.

        External containers go first, then the container itself; the
        booted flag is cleared even when ``container.shutdown()`` fails.

        Returns:
            ``True`` if this call shut the container down.

        Raises:
            ContainerBootError: If ``container.shutdown()`` fails.
        """
        if not context.container_started_here:
            return False
        with self._lock:
            if not self.is_stop_container_allowed():
                LOGGER.debug("Suite is running; keeping container started by %s", context)
                return False
            self.shutdown_external_containers(context)
            LOGGER.debug("Shutting down container started by %s", context)
            try:
                container.shutdown()
            except Exception as e:
                raise ContainerBootError("shutdown", e) from e
            finally:
                self._container_started = False
                context.container_started_here = False
        return True

    def reset(self) -> None:
        with self._lock:
            self._container_started = False
            self._suite_running = False


gatekeeper = ContainerGatekeeper()
