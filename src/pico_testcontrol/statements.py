"""Statements and the statement decorator chain.

A statement is one executable step of a test run (``evaluate()``).
Runners compose statements around the test method; extension factories
discovered through :mod:`pico_testcontrol.plugins` wrap the composed
statement via :class:`HookChain`.
"""

from typing import Any, Callable, Iterable, List, Optional, Sequence

from .constants import PICO_TIMEOUT, STATEMENT_DECORATOR_FLAG
from .exceptions import MultipleFailuresError, UnsupportedFeatureError
from .plugins import load_services, ordinal_of


class Statement:
    def evaluate(self) -> None:
        raise NotImplementedError


class FunctionStatement(Statement):
    def __init__(self, fn: Callable[[], Any]) -> None:
        self._fn = fn

    def evaluate(self) -> None:
        self._fn()


class RunBefores(Statement):
    """Runs each ``before`` callable, then the wrapped statement."""

    def __init__(self, statement: Statement, befores: Sequence[Callable[[], Any]]) -> None:
        self.next = statement
        self.befores = list(befores)

    def evaluate(self) -> None:
        for before in self.befores:
            before()
        self.next.evaluate()


class RunAfters(Statement):
    """Runs the wrapped statement, then every ``after`` callable even on failure.

    A single error is re-raised unchanged; several are raised together as
    :class:`MultipleFailuresError`.
    """

    def __init__(self, statement: Statement, afters: Sequence[Callable[[], Any]]) -> None:
        self.next = statement
        self.afters = list(afters)

    def evaluate(self) -> None:
        errors: List[BaseException] = []
        try:
            self.next.evaluate()
        except Exception as e:
            errors.append(e)
        finally:
            for after in self.afters:
                try:
                    after()
                except Exception as e:
                    errors.append(e)
        if len(errors) == 1:
            raise errors[0]
        if errors:
            raise MultipleFailuresError(errors)


class RejectTimeout(Statement):
    """Fails fast: a timeout would run the test on a thread without the started scopes."""

    def __init__(self, method_name: str, seconds: float) -> None:
        self.method_name = method_name
        self.seconds = seconds

    def evaluate(self) -> None:
        raise UnsupportedFeatureError("timeout", f"{self.method_name} declares timeout={self.seconds}")


def timeout_of(method: Any) -> Optional[float]:
    """Return the timeout declared on *method* via ``@timeout`` or ``pytest.mark.timeout``."""
    fn = getattr(method, "__func__", method)
    declared = getattr(fn, PICO_TIMEOUT, None)
    if declared is not None:
        return declared
    for mark in getattr(fn, "pytestmark", ()):
        if getattr(mark, "name", None) == "timeout":
            args = getattr(mark, "args", ())
            kwargs = getattr(mark, "kwargs", {})
            value = args[0] if args else kwargs.get("timeout", 0)
            return float(value or 0)
    return None


class HookChain:
    """Ordinal-sorted statement decorator factories.

    Factories are applied in ascending ordinal order (ties keep discovery
    order), each wrapping the result of the previous one. The factory with
    the highest ordinal therefore produces the outermost statement and runs
    its code first. A factory returning ``None`` leaves the statement as it
    is, so an empty chain returns the base statement itself.
    """

    def __init__(self, factories: Iterable[Any] = ()) -> None:
        self._factories = tuple(sorted(factories, key=ordinal_of))

    @classmethod
    def discover(cls, modules: Optional[Iterable[Any]] = None) -> "HookChain":
        return cls(load_services(STATEMENT_DECORATOR_FLAG, modules))

    @property
    def factories(self) -> tuple:
        return self._factories

    def __len__(self) -> int:
        return len(self._factories)

    def wrap_before(self, statement: Statement, test_class: type, target: Any) -> Statement:
        for factory in self._factories:
            result = factory.create_before_statement(statement, test_class, target)
            if result is not None:
                statement = result
        return statement

    def wrap_after(self, statement: Statement, test_class: type, target: Any) -> Statement:
        for factory in self._factories:
            result = factory.create_after_statement(statement, test_class, target)
            if result is not None:
                statement = result
        return statement
