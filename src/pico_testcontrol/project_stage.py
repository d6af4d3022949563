"""Project stages and the process-wide current stage."""

import os
import threading
from enum import Enum
from typing import Optional, Union

from .constants import ENV_PROJECT_STAGE, LOGGER
from .exceptions import ConfigurationError


class ProjectStage(str, Enum):
    """Deployment/environment stage active while a test level runs."""

    UNIT_TEST = "UnitTest"
    DEVELOPMENT = "Development"
    SYSTEM_TEST = "SystemTest"
    INTEGRATION_TEST = "IntegrationTest"
    STAGING = "Staging"
    PRODUCTION = "Production"

    @classmethod
    def of(cls, value: Union[str, "ProjectStage"]) -> "ProjectStage":
        """Parse a stage from its value (``"UnitTest"``) or member name (``"unit_test"``).

        Matching is case-insensitive.

        Raises:
            ConfigurationError: If *value* names no known stage.
        """
        if isinstance(value, ProjectStage):
            return value
        wanted = str(value).strip().lower()
        for stage in cls:
            if wanted in (stage.value.lower(), stage.name.lower()):
                return stage
        raise ConfigurationError(f"Unknown project stage: '{value}'")


_lock = threading.Lock()
_current: Optional[ProjectStage] = None


def get_project_stage() -> ProjectStage:
    global _current
    with _lock:
        if _current is None:
            env = os.environ.get(ENV_PROJECT_STAGE)
            _current = ProjectStage.of(env) if env else ProjectStage.PRODUCTION
        return _current


def set_project_stage(stage: Optional[Union[str, ProjectStage]]) -> None:
    """Set the current project stage; ``None`` re-reads the environment on next access."""
    global _current
    new = ProjectStage.of(stage) if stage is not None else None
    with _lock:
        _current = new
    LOGGER.debug("Project stage set to %s", new.value if new else "<default>")
