"""Exception hierarchy for pico-testcontrol.

All framework-specific exceptions inherit from :class:`TestControlError`,
making it easy to catch any pico-testcontrol error with a single
``except TestControlError`` clause.
"""

from typing import Any, List


class TestControlError(Exception):
    """Base exception for all pico-testcontrol errors."""

    __test__ = False


class ContainerBootError(TestControlError):
    """Raised when the primary container fails to boot or shut down.

    The container is a hard prerequisite of every container-managed test,
    so this error aborts the run.

    Attributes:
        phase: ``"boot"`` or ``"shutdown"``.
        cause: The original exception raised by the container.
    """

    def __init__(self, phase: str, cause: Exception):
        super().__init__(f"Container {phase} failed: {cause.__class__.__name__}: {cause}")
        self.phase = phase
        self.cause = cause


class ScopeError(TestControlError):
    """Raised for scope-related errors (unknown scope, reserved name, inactive scope)."""

    def __init__(self, msg: str):
        super().__init__(msg)


class ConfigurationError(TestControlError):
    """Raised for invalid test-control settings, project stages or config files."""

    def __init__(self, msg: str):
        super().__init__(msg)


class MethodInvocationError(TestControlError):
    """The single failure kind raised by the container-aware method invoker.

    Attributes:
        method_name: Qualified name of the test method.
        cause: The exception raised by the test method (also ``__cause__``).
    """

    def __init__(self, method_name: str, cause: BaseException):
        super().__init__(f"{method_name} failed: {cause.__class__.__name__}: {cause}")
        self.method_name = method_name
        self.cause = cause


class UnsupportedFeatureError(TestControlError):
    """Raised when a test uses a feature that cannot work with a managed container.

    Attributes:
        feature: Short name of the rejected feature (e.g. ``"timeout"``).
    """

    def __init__(self, feature: str, detail: str = ""):
        msg = f"'{feature}' isn't supported in container-managed tests"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)
        self.feature = feature


class MultipleFailuresError(TestControlError):
    """Raised when several ``after`` steps of the same statement fail.

    Attributes:
        errors: The collected exceptions, in the order they were raised.
    """

    def __init__(self, errors: List[BaseException]):
        lines = "\n".join(f"- {e.__class__.__name__}: {e}" for e in errors)
        super().__init__(f"There were {len(errors)} errors:\n{lines}")
        self.errors = errors


def describe(obj: Any) -> str:
    mod = getattr(obj, "__module__", None)
    name = getattr(obj, "__qualname__", None) or getattr(obj, "__name__", None) or type(obj).__name__
    return f"{mod}.{name}" if mod else name
