r"""Configuration data classes which can be read from and written to JSON or YAML files."""

from __future__ import annotations

from dataclasses import asdict, fields
import json
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Type, TypeVar

import dacite
import yaml

from .typing import PathStr, is_path_str_field


__all__ = ("DataclassConfig", "load_config", "write_config")


TDataclassConfig = TypeVar("TDataclassConfig", bound="DataclassConfig")


DACITE_CONFIG = dacite.Config(type_hooks={float: float}, cast=[tuple, Path], strict=True)


def load_config(path: PathStr) -> Dict[str, Any]:
    r"""Load configuration entries from JSON or YAML file."""
    config_path = Path(path).absolute()
    config_text = config_path.read_text()
    if config_path.suffix == ".json":
        return json.loads(config_text)
    config = yaml.safe_load(config_text)
    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ValueError(f"load_config() file {config_path} must contain a mapping")
    return config


def write_config(config: Mapping[str, Any], path: PathStr) -> Path:
    r"""Write configuration entries to JSON or YAML file depending on file name suffix."""
    config_path = Path(path).absolute()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    if config_path.suffix == ".json":
        config_path.write_text(json.dumps(dict(config), indent=2) + "\n")
    else:
        config_path.write_text(yaml.safe_dump(dict(config), sort_keys=False))
    return config_path


class DataclassConfig(object):
    r"""Base class of configuration data classes.

    Subclasses must be decorated with ``@dataclass``. Entries of a configuration dictionary are
    checked against the dataclass field types by ``dacite``, and file paths given relative to a
    configuration file are made absolute using the directory of this file as parent.

    """

    @classmethod
    def from_dict(
        cls: Type[TDataclassConfig], arg: Mapping[str, Any], parent: Optional[PathStr] = None
    ) -> TDataclassConfig:
        r"""Create configuration from dictionary.

        Args:
            arg: Dictionary of configuration entries.
            parent: Parent directory of relative file paths. If ``None``, paths are not modified.

        Returns:
            New configuration instance.

        """
        if not isinstance(arg, Mapping):
            raise TypeError(f"{cls.__name__}.from_dict() 'arg' must be a mapping")
        config = dacite.from_dict(cls, dict(arg), config=DACITE_CONFIG)
        if parent is not None:
            config._finalize(Path(parent))
        return config

    @classmethod
    def read(cls: Type[TDataclassConfig], path: PathStr) -> TDataclassConfig:
        r"""Read configuration from JSON or YAML file."""
        path = Path(path).absolute()
        return cls.from_dict(load_config(path), parent=path.parent)

    def to_dict(self) -> Dict[str, Any]:
        r"""Get configuration as dictionary of plain Python values."""
        config = asdict(self)
        for name, value in config.items():
            if isinstance(value, Path):
                config[name] = str(value)
            elif isinstance(value, tuple):
                config[name] = list(value)
        return config

    def write(self, path: PathStr) -> Path:
        r"""Write configuration to JSON or YAML file."""
        return write_config(self.to_dict(), path)

    def _finalize(self, parent: Path) -> None:
        r"""Make relative file paths absolute."""
        for field in fields(self):
            if not is_path_str_field(field):
                continue
            value = getattr(self, field.name)
            if value is None:
                continue
            path = Path(value)
            if not path.is_absolute():
                setattr(self, field.name, (parent / path).absolute())
