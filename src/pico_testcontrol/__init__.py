# pico_testcontrol/__init__.py
try:
    from ._version import __version__
except Exception:
    __version__ = "0.0.0"

from .config import TestControl, get_control, load_control, control_from_tree
from .config_sources import DictSource, JsonTreeSource, YamlTreeSource
from .container import BeanHandle, ContainerProtocol, ScopeControl, SimpleContainer
from .context import ExecutionContext
from .decorators import (
    control, timeout,
    external_container, statement_decorator,
    component, cleanup,
)
from .exceptions import (
    TestControlError,
    ContainerBootError,
    ScopeError,
    ConfigurationError,
    MethodInvocationError,
    UnsupportedFeatureError,
    MultipleFailuresError,
)
from .gatekeeper import ContainerGatekeeper
from .invoker import ContainerAwareMethodInvoker
from .notification import Description, Failure, RunListener, RunNotifier, LogRunListener, NotifierRegistry
from .plugins import ExternalContainer, StatementDecoratorFactory, configure_modules, register_service, load_services
from .project_stage import ProjectStage, get_project_stage, set_project_stage
from .runner import ContainerTestRunner, ContainerTestSuiteRunner
from .scope import ScopeStack
from .statements import Statement, HookChain
from .api import get_container, use_container, reset

__all__ = [
    "__version__",
    "TestControl",
    "get_control",
    "load_control",
    "control_from_tree",
    "DictSource",
    "JsonTreeSource",
    "YamlTreeSource",
    "BeanHandle",
    "ContainerProtocol",
    "ScopeControl",
    "SimpleContainer",
    "ExecutionContext",
    "control",
    "timeout",
    "external_container",
    "statement_decorator",
    "component",
    "cleanup",
    "TestControlError",
    "ContainerBootError",
    "ScopeError",
    "ConfigurationError",
    "MethodInvocationError",
    "UnsupportedFeatureError",
    "MultipleFailuresError",
    "ContainerGatekeeper",
    "ContainerAwareMethodInvoker",
    "Description",
    "Failure",
    "RunListener",
    "RunNotifier",
    "LogRunListener",
    "NotifierRegistry",
    "ExternalContainer",
    "StatementDecoratorFactory",
    "configure_modules",
    "register_service",
    "load_services",
    "ProjectStage",
    "get_project_stage",
    "set_project_stage",
    "ContainerTestRunner",
    "ContainerTestSuiteRunner",
    "ScopeStack",
    "Statement",
    "HookChain",
    "get_container",
    "use_container",
    "reset",
]
