"""Constants used throughout pico-testcontrol.

This module defines the framework logger, the attribute names stamped onto
decorated test classes, methods and extensions, and the built-in scope
identifiers.
"""

import logging

LOGGER_NAME: str = "pico_testcontrol"
"""Default logger name for pico-testcontrol."""

LOGGER: logging.Logger = logging.getLogger(LOGGER_NAME)
"""Package logger; scope, container and run diagnostics are written here."""

PICO_CONTROL: str = "_pico_test_control"
"""Attribute name storing the :class:`~pico_testcontrol.config.TestControl` of a test class or method."""

PICO_META: str = "_pico_meta"
"""Attribute name storing the metadata dictionary (component scope, cleanup flags)."""

PICO_TIMEOUT: str = "_pico_timeout"
"""Attribute name storing a declared per-method timeout in seconds."""

EXTERNAL_CONTAINER_FLAG: str = "_pico_external_container"
"""Flag marking a class as an external container extension."""

STATEMENT_DECORATOR_FLAG: str = "_pico_statement_decorator"
"""Flag marking a class as a statement decorator factory extension."""

SCOPE_SINGLETON: str = "singleton"
"""Built-in scope: one instance per container lifetime."""

SCOPE_APPLICATION: str = "application"
"""Built-in scope: one instance per container lifetime, owned by the container."""

SCOPE_PROTOTYPE: str = "prototype"
"""Built-in scope: a new (dependent) instance on every resolution."""

SCOPE_REQUEST: str = "request"
"""Context scope started around test methods by default."""

SCOPE_SESSION: str = "session"
"""Context scope started around test methods by default."""

SCOPE_CONVERSATION: str = "conversation"
"""Context scope only started when declared explicitly."""

DEFAULT_SCOPES: tuple = (SCOPE_SESSION, SCOPE_REQUEST)
"""Scopes started when a level declares no scopes of its own, in start order."""

CONTAINER_MANAGED_SCOPES: tuple = (SCOPE_APPLICATION, SCOPE_SINGLETON)
"""Scopes owned by the container itself; never started by a class-level context."""

ENV_PROJECT_STAGE: str = "PICO_PROJECT_STAGE"
ENV_MODULES: str = "PICO_TESTCONTROL_MODULES"
ENV_CONFIG: str = "PICO_TESTCONTROL_CONFIG"
