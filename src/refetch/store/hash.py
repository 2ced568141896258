"""Fingerprinting utilities for cache keys and change detection.

This module provides deterministic canonical serialization of arbitrary
values and a stable SHA-256 fingerprint over that serialization.
"""

import dataclasses
import functools
import hashlib
import inspect
import json
from collections.abc import Callable, Mapping
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from pathlib import PurePath
from types import CodeType, FunctionType, MethodType, ModuleType
from typing import Any
from xml.etree.ElementTree import Element, tostring

from bs4 import BeautifulSoup
from pydantic import BaseModel


def _const_form(const: Any) -> Any:
    """Describe a compiled-in constant."""
    if isinstance(const, CodeType):
        return _code_form(const)
    if isinstance(const, tuple):
        return [_const_form(item) for item in const]
    if const is None or isinstance(const, bool | int | float | str | bytes | frozenset):
        return canonicalize(const)
    # Ellipsis, complex and slice constants
    return repr(const)


def _code_form(code: CodeType) -> dict[str, Any]:
    """Describe compiled code by its bytecode, constants and names."""
    return {
        "name": code.co_name,
        "bytecode": hashlib.sha256(code.co_code).hexdigest(),
        "consts": [_const_form(const) for const in code.co_consts],
        "names": list(code.co_names),
    }


_CONSTANT_TYPES = (type(None), bool, int, float, str, bytes, Enum)


def _closure_value(value: Any) -> Any:
    """Describe a captured variable; only constants contribute their value."""
    if isinstance(value, _CONSTANT_TYPES) or (
        isinstance(value, tuple | frozenset)
        and all(isinstance(item, _CONSTANT_TYPES) for item in value)
    ):
        return canonicalize(value)
    return {"__captured__": f"{type(value).__module__}.{type(value).__qualname__}"}


def _source(obj: Any) -> str:
    try:
        return inspect.getsource(obj)
    except (OSError, TypeError):
        return ""


def _callable_form(fn: Callable[..., Any]) -> dict[str, Any]:
    """Describe a callable so that different behaviour gives a different form.

    Functions are described by qualified name, source text, compiled code,
    defaults and closure values; partials by the wrapped callable and bound
    arguments; bound methods by function and instance; callable instances
    by class and instance state.
    """
    if isinstance(fn, functools.partial):
        return {
            "partial": canonicalize(fn.func),
            "args": canonicalize(fn.args),
            "keywords": canonicalize(fn.keywords),
        }
    if isinstance(fn, MethodType):
        return {"method": canonicalize(fn.__func__), "self": canonicalize(fn.__self__)}

    name = f"{getattr(fn, '__module__', None) or ''}.{getattr(fn, '__qualname__', '')}"
    if isinstance(fn, FunctionType):
        closure = [_closure_value(cell.cell_contents) for cell in fn.__closure__ or ()]
        return {
            "function": name,
            "source": _source(fn),
            "code": _code_form(fn.__code__),
            "defaults": canonicalize(fn.__defaults__),
            "kwdefaults": canonicalize(fn.__kwdefaults__),
            "closure": canonicalize(closure),
        }
    if isinstance(fn, type) or inspect.isroutine(fn):
        bound = getattr(fn, "__self__", None)
        return {
            "function": name,
            "source": _source(fn),
            "self": None if isinstance(bound, ModuleType) else canonicalize(bound),
        }

    cls = type(fn)
    return {
        "instance": f"{cls.__module__}.{cls.__qualname__}",
        "source": _source(cls),
        "state": _object_state(fn),
    }


def _object_state(value: Any) -> Any:
    """Get the canonical attribute state of a plain object.

    Raises:
        TypeError: If the object exposes no attributes to describe it.
    """
    state: dict[str, Any] = {}
    if hasattr(value, "__dict__"):
        state.update(vars(value))
    for cls in type(value).__mro__:
        for slot in getattr(cls, "__slots__", ()):
            if slot not in ("__dict__", "__weakref__") and hasattr(value, slot):
                state[slot] = getattr(value, slot)
    if not state and not hasattr(value, "__dict__"):
        msg = f"Cannot fingerprint object of type {type(value).__qualname__}"
        raise TypeError(msg)
    return canonicalize(state)


def canonicalize(value: Any) -> Any:  # noqa: PLR0911
    """Convert a value into a JSON-serializable, deterministic form.

    Mappings are emitted with sorted keys by the JSON encoder; bytes are
    reduced to their SHA-256 digest so large bodies are not copied into the
    serialized form; callables by what they run and what they are bound to;
    markup documents and XML elements by their serialized markup; other
    objects by their class and attribute state.

    Args:
        value: Any value.

    Returns:
        A structure made only of dicts, lists, strings, numbers, bools and None.

    Raises:
        TypeError: If an object has no attribute state to describe it.
    """
    if value is None or isinstance(value, bool | int | float | str):
        return value
    if isinstance(value, bytes | bytearray | memoryview):
        return {"__bytes__": hashlib.sha256(bytes(value)).hexdigest()}
    if isinstance(value, Enum):
        return canonicalize(value.value)
    if isinstance(value, datetime | date | time):
        return {"__datetime__": value.isoformat()}
    if isinstance(value, timedelta):
        return {"__timedelta__": value.total_seconds()}
    if isinstance(value, PurePath | Decimal):
        return str(value)
    if isinstance(value, BeautifulSoup):
        return {"__markup__": str(value)}
    if isinstance(value, Element):
        return {"__xml__": tostring(value, encoding="unicode")}
    if isinstance(value, BaseModel):
        return canonicalize(value.model_dump())
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return canonicalize(dataclasses.asdict(value))
    if isinstance(value, Mapping):
        return {str(key): canonicalize(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [canonicalize(item) for item in value]
    if isinstance(value, set | frozenset):
        return sorted((canonicalize(item) for item in value), key=canonical_json)
    if callable(value):
        return {"__callable__": _callable_form(value)}
    cls = type(value)
    return {
        "__object__": f"{cls.__module__}.{cls.__qualname__}",
        "state": _object_state(value),
    }


def canonical_json(value: Any) -> str:
    """Serialize a value to its canonical JSON text.

    Args:
        value: Any value accepted by ``canonicalize``.

    Returns:
        Compact JSON with sorted keys.
    """
    return json.dumps(
        canonicalize(value),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def fingerprint(value: Any) -> str:
    """Compute a stable fingerprint for a value.

    Identical structured input always yields the identical fingerprint.
    Raw ``bytes`` and ``str`` are hashed directly, everything else is
    hashed over its canonical JSON form.

    Args:
        value: Any value accepted by ``canonicalize``.

    Returns:
        Hex SHA-256 digest (64 characters).

    Examples:
        >>> fingerprint(b"hello") == fingerprint(b"hello")
        True
        >>> fingerprint({"a": 1, "b": 2}) == fingerprint({"b": 2, "a": 1})
        True
    """
    if isinstance(value, bytes | bytearray | memoryview):
        return hashlib.sha256(bytes(value)).hexdigest()
    if isinstance(value, str):
        return hashlib.sha256(value.encode("utf-8")).hexdigest()
    return hashlib.sha256(canonical_json(value).encode("utf-8")).hexdigest()
