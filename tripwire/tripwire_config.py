"""
Configuration for the assertion engine.

`assert_config` is the process-wide root configuration. Every assertion chain
works on a clone of it, so per-chain overrides never leak back. Options are
read and written as attributes; the `format` section is itself an attribute
view whose dict merges in place when assigned.
"""
import copy
import os
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Union

import yaml

from tripwire.tripwire_datatypes import Formatter, Removable
from tripwire.tripwire_errors import TripwireError
from tripwire.tripwire_printer import FormatManager


def _circular_msg() -> str:
    return "[<Circular>]"


DEFAULT_CONFIG: Mapping[str, Any] = MappingProxyType({
    "is_verbose": False,
    "full_stack": False,
    "def_assert_msg": "assertion failure",
    "def_fatal_msg": "fatal assertion failure",
    "format": MappingProxyType({
        "finalize": False,
        "finalize_fn": None,
        "max_props": 8,
        "max_format_depth": 50,
        "max_proto_depth": 4,
    }),
    "circular_msg": _circular_msg,
    "show_diff": True,
    "max_compare_depth": 100,
    "max_compare_check_depth": 50,
})


def _merge_config(target: Dict[str, Any], source: Mapping[str, Any]) -> Dict[str, Any]:
    """Deep-merges `source` into `target`, copying lists and nested mappings."""
    for key, value in source.items():
        if isinstance(value, list):
            target[key] = list(value)
        elif isinstance(value, Mapping):
            if not isinstance(target.get(key), dict):
                target[key] = {}
            _merge_config(target[key], value)
        else:
            target[key] = value
    return target


def _check_keys(values: Mapping[str, Any], defaults: Mapping[str, Any], prefix: str = ""):
    for key, value in values.items():
        if key not in defaults:
            raise TripwireError(f"Unknown configuration option: {prefix}{key}")
        if isinstance(value, Mapping) and isinstance(defaults[key], Mapping):
            _check_keys(value, defaults[key], f"{prefix}{key}.")


class ConfigSection:
    """A live attribute view over one level of configuration values."""

    def __init__(self, values: Dict[str, Any], defaults: Mapping[str, Any]):
        object.__setattr__(self, "_values", values)
        object.__setattr__(self, "_defaults", defaults)

    def __getattr__(self, key: str) -> Any:
        if key.startswith("_") or key not in self._defaults:
            raise AttributeError(key)
        result = self._values.get(key)
        if isinstance(result, dict):
            return ConfigSection(result, self._defaults[key])
        return result

    def __setattr__(self, key: str, value: Any):
        if key not in self._defaults:
            raise TripwireError(f"Unknown configuration option: {key}")
        values, defaults = self._values, self._defaults
        default = defaults[key]
        if isinstance(default, Mapping):
            if value is not None:
                if isinstance(value, ConfigSection):
                    value = value.to_dict()
                if not isinstance(value, Mapping):
                    raise TripwireError(f"Configuration option {key} expects a mapping")
                _check_keys(value, default, f"{key}.")
            if not isinstance(values.get(key), dict):
                values[key] = {}
            _merge_config(values[key], default if value is None else value)
        elif isinstance(default, list):
            values[key] = list(default if value is None else value)
        else:
            values[key] = default if value is None else value

    def __getitem__(self, key: str) -> Any:
        return getattr(self, key)

    def __contains__(self, key: str) -> bool:
        return key in self._defaults

    def keys(self):
        return self._defaults.keys()

    def to_dict(self) -> Dict[str, Any]:
        """Returns a deep copy of the current values."""
        return _merge_config({}, self._values)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._values!r})"


class ConfigInst(ConfigSection):
    """
    A configuration instance: the option values plus the format manager used
    to render values for messages.
    """

    def __init__(self, defaults: Mapping[str, Any] = DEFAULT_CONFIG,
                 parent_format_mgr: Optional[Callable[[], FormatManager]] = None):
        super().__init__(_merge_config({}, defaults), defaults)
        object.__setattr__(self, "_parent_format_mgr", parent_format_mgr)
        object.__setattr__(self, "_format_mgr", None)

    @property
    def format_mgr(self) -> FormatManager:
        """The format manager, created on first use as a child of the parent's."""
        if self._format_mgr is None:
            parent = self._parent_format_mgr() if self._parent_format_mgr is not None else None
            object.__setattr__(self, "_format_mgr", FormatManager(parent))
        return self._format_mgr

    def add_formatter(self, formatter: Union[Formatter, list]) -> Removable:
        return self.format_mgr.add_formatter(formatter)

    def remove_formatter(self, formatter: Union[Formatter, list]):
        self.format_mgr.remove_formatter(formatter)

    def reset(self):
        """Restores the defaults in place and drops this instance's own formatters."""
        _merge_config(self._values, self._defaults)
        if self._format_mgr is not None:
            self._format_mgr.reset()

    def clone(self, overrides: Optional[Mapping[str, Any]] = None) -> "ConfigInst":
        """
        Creates an independent copy of the current values with `overrides`
        applied. The clone's format manager inherits this instance's formatters.
        """
        values = copy.deepcopy(self._values)
        if overrides:
            if isinstance(overrides, ConfigSection):
                overrides = overrides.to_dict()
            _check_keys(overrides, self._defaults)
            _merge_config(values, overrides)
        return ConfigInst(_freeze(values), lambda: self.format_mgr)

    def update(self, options: Mapping[str, Any]) -> "ConfigInst":
        """Applies several options at once, validating every key first."""
        _check_keys(options, self._defaults)
        for key, value in options.items():
            setattr(self, key, value)
        return self

    def load_yaml(self, source: Union[str, "os.PathLike", Any]) -> "ConfigInst":
        """Reads option overrides from a YAML file path or an open stream."""
        if isinstance(source, (str, os.PathLike)):
            with open(source, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        else:
            data = yaml.safe_load(source)

        if data is None:
            return self
        if not isinstance(data, Mapping):
            raise TripwireError(f"Configuration must be a mapping, found {type(data).__name__}")
        return self.update(data)


def _freeze(values: Dict[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType({
        key: _freeze(value) if isinstance(value, dict) else value
        for key, value in values.items()
    })


def create_config(overrides: Optional[Mapping[str, Any]] = None) -> ConfigInst:
    """Creates a standalone configuration whose formatters inherit from `assert_config`."""
    return assert_config.clone(overrides)


assert_config = ConfigInst()
