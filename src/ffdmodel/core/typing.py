r"""Type annotations for torch functions."""

from dataclasses import Field
from pathlib import Path
from typing import Any, Sequence, Union

import torch

from torch import Tensor


Device = torch.device
DType = torch.dtype
Scalar = Union[int, float, Tensor]
Array = Union[Sequence[Scalar], Tensor]

PathStr = Union[Path, str]


def is_path_str_type_hint(type_hint: Any) -> bool:
    r"""Check if given type annotation is ``pathlib.Path`` or ``Union[pathlib.Path, str]``.

    With ``from __future__ import annotations``, the field types of a dataclass are strings.
    The string annotations which are used by configuration data classes are thus recognized too.

    """
    if type_hint in (Path, "Path", "Optional[Path]", "PathStr", "Optional[PathStr]"):
        return True
    type_origin = getattr(type_hint, "__origin__", None)
    if type_origin is Union:
        type_args = set(type_hint.__args__)
        type_args.discard(type(None))
        type_args.discard(str)
        if not type_args:
            return False
        return all(type_arg is Path for type_arg in type_args)
    return False


def is_path_str_field(field: Field) -> bool:
    r"""Check if given dataclass field type is ``pathlib.Path`` or ``PathStr``."""
    return is_path_str_type_hint(field.type)
