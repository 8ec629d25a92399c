r"""Conversion of transformations to and from plain records for persistence.

A record contains the name of the transformation type, the geometry of the control point grid,
and the flat vector of transformation parameters. The type name selects the transformation model
which reconstructs an instance from a record. Models register themselves for one or more type
names using the :func:`register_transform` class decorator.

"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, TypeVar, Union

from ..core.config import DataclassConfig, load_config, write_config
from ..core.typing import PathStr


__all__ = (
    "TransformRecord",
    "from_record",
    "read_transform",
    "register_transform",
    "to_record",
    "transform_type",
    "transform_types",
    "write_transform",
)


log = logging.getLogger(__name__)

T = TypeVar("T", bound=type)

TRANSFORM_TYPES: Dict[str, type] = {}

# Keys of record dictionaries written to files
RECORD_KEYS = {
    "type": "type",
    "grid_size": "gridSize",
    "grid_spacing": "gridSpacing",
    "grid_origin": "gridOrigin",
    "parameters": "parameters",
}


@dataclass
class TransformRecord(DataclassConfig):
    r"""Plain record of transformation state."""

    type: str
    grid_size: List[int]
    grid_spacing: List[float]
    grid_origin: List[float]
    parameters: List[float]

    @classmethod
    def from_dict(
        cls, arg: Mapping[str, Any], parent: Optional[PathStr] = None
    ) -> TransformRecord:
        r"""Create record from dictionary with either ``snake_case`` or ``camelCase`` keys."""
        if not isinstance(arg, Mapping):
            raise TypeError(f"{cls.__name__}.from_dict() 'arg' must be a mapping")
        names = {key: name for name, key in RECORD_KEYS.items()}
        return super().from_dict({names.get(k, k): v for k, v in arg.items()}, parent=parent)

    def to_dict(self) -> Dict[str, Any]:
        r"""Get record as dictionary with ``camelCase`` keys."""
        return {RECORD_KEYS[name]: value for name, value in super().to_dict().items()}


def register_transform(name: str, *aliases: str) -> Callable[[T], T]:
    r"""Class decorator which registers a transformation model for the given record type names.

    The first name is the one written by ``to_record()``. The decorated class must provide a
    ``from_record()`` class method, and its ``transform_type`` attribute is set to ``name``.

    """

    def decorator(cls: T) -> T:
        if not callable(getattr(cls, "from_record", None)):
            raise TypeError(f"register_transform() {cls.__name__} must define from_record()")
        for type_name in (name,) + aliases:
            registered = TRANSFORM_TYPES.get(type_name)
            if registered is not None and registered is not cls:
                raise ValueError(
                    f"register_transform() type name {type_name!r} already used by"
                    f" {registered.__name__}"
                )
            TRANSFORM_TYPES[type_name] = cls
        cls.transform_type = name
        return cls

    return decorator


def transform_type(name: str) -> type:
    r"""Get transformation model registered for given record type name."""
    try:
        return TRANSFORM_TYPES[name]
    except KeyError:
        raise ValueError(
            f"Unknown transformation type {name!r}, must be one of: {', '.join(transform_types())}"
        ) from None


def transform_types() -> Tuple[str, ...]:
    r"""Names of registered transformation record types."""
    return tuple(sorted(TRANSFORM_TYPES))


def to_record(transform: Any) -> TransformRecord:
    r"""Convert transformation to plain record."""
    func = getattr(transform, "to_record", None)
    if not callable(func):
        raise TypeError(f"to_record() {type(transform).__name__} cannot be converted to record")
    return func()


def from_record(record: Union[TransformRecord, Mapping[str, Any]]) -> Any:
    r"""Create transformation from plain record, where the record ``type`` selects the model."""
    if not isinstance(record, TransformRecord):
        record = TransformRecord.from_dict(record)
    cls = transform_type(record.type)
    return cls.from_record(record)


def write_transform(transform: Any, path: PathStr) -> Path:
    r"""Write transformation record to JSON (``.json``) or YAML file."""
    path = write_config(to_record(transform).to_dict(), path)
    log.debug(f"Wrote {type(transform).__name__} to {path}")
    return path


def read_transform(path: PathStr) -> Any:
    r"""Read transformation from JSON or YAML record file."""
    path = Path(path).absolute()
    log.debug(f"Read transformation from {path}")
    return from_record(load_config(path))
