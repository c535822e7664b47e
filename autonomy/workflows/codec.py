"""
codec.py — msgpack data converter for workflow and activity payloads.

Everything passed across an activity or child-workflow boundary is encoded
and decoded here, so activities never share mutable objects with the loop
that called them and every payload is known to be serializable.

msgpack keeps ints and floats apart and encodes datetimes natively. The
types it does not know are carried as extension records:

  ExtType 1  pydantic model   ["module:QualName", model_dump()]
  ExtType 2  Enum member      ["module:QualName", value]   (str and int enums
                                                       pack as their value)
  ExtType 3  set / frozenset  [items...]

Only classes defined under the `autonomy.` package are resolved on decode.
"""

import importlib
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import msgpack
from pydantic import BaseModel

EXT_MODEL = 1
EXT_ENUM = 2
EXT_SET = 3

_ALLOWED_PREFIX = "autonomy."


class CodecError(ValueError):
    pass


def _type_path(cls: type) -> str:
    return f"{cls.__module__}:{cls.__qualname__}"


def _resolve(path: str) -> type:
    module_name, _, qualname = path.partition(":")
    if not module_name.startswith(_ALLOWED_PREFIX):
        raise CodecError(f"refusing to decode type {path!r}")
    obj: Any = importlib.import_module(module_name)
    for part in qualname.split("."):
        obj = getattr(obj, part)
    return obj


def _default(obj: Any) -> Any:
    if isinstance(obj, BaseModel):
        body = [_type_path(type(obj)), obj.model_dump(mode="python")]
        return msgpack.ExtType(EXT_MODEL, _pack(body))
    if isinstance(obj, Enum):
        return msgpack.ExtType(EXT_ENUM, _pack([_type_path(type(obj)), obj.value]))
    if isinstance(obj, (set, frozenset)):
        return msgpack.ExtType(EXT_SET, _pack(sorted(obj, key=repr)))
    if isinstance(obj, datetime) and obj.tzinfo is None:
        # msgpack timestamps are UTC instants
        return obj.replace(tzinfo=timezone.utc)
    raise TypeError(f"cannot encode {type(obj).__name__}")


def _ext_hook(code: int, data: bytes) -> Any:
    if code == EXT_MODEL:
        path, fields = _unpack(data)
        return _resolve(path).model_validate(fields)
    if code == EXT_ENUM:
        path, value = _unpack(data)
        return _resolve(path)(value)
    if code == EXT_SET:
        return set(_unpack(data))
    return msgpack.ExtType(code, data)


def _pack(obj: Any) -> bytes:
    return msgpack.packb(obj, default=_default, use_bin_type=True, datetime=True)


def _unpack(data: bytes) -> Any:
    return msgpack.unpackb(
        data,
        ext_hook=_ext_hook,
        raw=False,
        timestamp=3,           # → timezone-aware datetime
        strict_map_key=False,
    )


def encode(value: Any) -> bytes:
    try:
        return _pack(value)
    except (TypeError, ValueError) as exc:
        raise CodecError(f"cannot encode payload: {exc}") from exc


def decode(data: bytes) -> Any:
    return _unpack(data)


def encode_args(args: tuple) -> bytes:
    return encode(list(args))


def decode_args(data: bytes) -> tuple:
    return tuple(decode(data))
