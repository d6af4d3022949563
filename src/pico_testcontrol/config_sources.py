"""Where a :class:`~pico_testcontrol.config.TestControl` tree comes from.

A control file holds a mapping, usually with a ``testcontrol`` key; see
:func:`pico_testcontrol.config.control_from_tree` for the keys it accepts.
JSON is always available; YAML needs the ``yaml`` extra.
"""

import json
from typing import Any, Callable, Mapping

from .exceptions import ConfigurationError


class TreeSource:
    def get_tree(self) -> Mapping[str, Any]:
        raise NotImplementedError


class DictSource(TreeSource):
    """A control tree already in memory, e.g. built by a conftest."""

    def __init__(self, data: Mapping[str, Any]):
        self._data = data

    def get_tree(self) -> Mapping[str, Any]:
        return self._data


class _FileSource(TreeSource):
    kind = ""

    def __init__(self, path: str):
        self._path = path

    def _parse(self) -> Callable[[Any], Any]:
        raise NotImplementedError

    def get_tree(self) -> Mapping[str, Any]:
        parse = self._parse()
        try:
            with open(self._path, encoding="utf-8") as f:
                data = parse(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Failed to load {self.kind} control file {self._path}: {e}") from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"{self.kind} control file {self._path} must hold a mapping at the top")
        return data


class JsonTreeSource(_FileSource):
    kind = "JSON"

    def _parse(self) -> Callable[[Any], Any]:
        return json.load


class YamlTreeSource(_FileSource):
    """Reads a YAML control file with ``yaml.safe_load``.

    Raises:
        ConfigurationError: PyYAML is missing (``pip install pico-testcontrol[yaml]``),
            or the file can't be read or parsed.
    """

    kind = "YAML"

    def _parse(self) -> Callable[[Any], Any]:
        try:
            import yaml
        except ImportError as e:
            raise ConfigurationError("PyYAML not installed") from e
        return yaml.safe_load

    def get_tree(self) -> Mapping[str, Any]:
        try:
            return super().get_tree()
        except ConfigurationError:
            raise
        except Exception as e:
            # yaml.YAMLError does not derive from ValueError
            raise ConfigurationError(f"Failed to load YAML control file {self._path}: {e}") from e


_BY_SUFFIX = {".json": JsonTreeSource, ".yaml": YamlTreeSource, ".yml": YamlTreeSource}


def source_for_path(path: str) -> TreeSource:
    lowered = str(path).lower()
    for suffix, source_cls in _BY_SUFFIX.items():
        if lowered.endswith(suffix):
            return source_cls(path)
    raise ConfigurationError(f"Unsupported control file type: {path}")
