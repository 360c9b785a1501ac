"""
shape.py - Classification of Python types into serializable shapes

Every serializable type has exactly one of six shapes:

- Primitive: fixed-size scalar with native byte layout
  (bool, int, float, Char, numpy scalar types)
- Record: a dataclass; fields in declaration order
- Sequence: list[T], set[T], frozenset[T], deque[T], tuple[T, ...],
  dict[K, V] (pairs), str (UTF-8 chars), bytes, NDArray[dtype]
- Product: tuple[A, B, ...] or a typing.NamedTuple
- Nullable: Optional[T] / T | None
- OwnedReference: Owned[T], an optional value owned by its parent

When a type fits more than one shape the first match in this order
wins: Primitive, Nullable, OwnedReference, Product, Record, Sequence.

Usage:
    from tycodec.shape import classify, Owned, Shape

    @dataclass
    class Node:
        value: int = 0
        next: Owned["Node"] = None

    classify(Node)               # Shape.RECORD
    classify(Owned[Node])        # Shape.OWNED_REFERENCE
    classify(dict[str, float])   # Shape.SEQUENCE
"""

from __future__ import annotations

import collections
import dataclasses
import enum
import functools
import types
from typing import (
    TYPE_CHECKING,
    Annotated,
    Any,
    Callable,
    Iterable,
    NamedTuple,
    NewType,
    Optional,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

import numpy as np

from .errors import UnsupportedType


class Shape(enum.Enum):
    PRIMITIVE = "primitive"
    RECORD = "record"
    SEQUENCE = "sequence"
    PRODUCT = "product"
    NULLABLE = "nullable"
    OWNED_REFERENCE = "owned_reference"


# =============================================================================
# Annotations
# =============================================================================

# One-byte signed character, the element type of str.
Char = NewType("Char", int)


class _OwnedMarker:
    def __repr__(self) -> str:
        return "Owned"


OWNED = _OwnedMarker()


if TYPE_CHECKING:
    Owned = Optional
else:
    class Owned:
        """Annotation for an optional value exclusively owned by its parent.

        ``Owned[T]`` is ``Annotated[Optional[T], OWNED]``: the value is
        either None or a T. Forward references are allowed, so a record
        can own the next instance of itself::

            @dataclass
            class Node:
                value: int = 0
                next: Owned["Node"] = None
        """

        def __class_getitem__(cls, item):
            return Annotated[Optional[item], OWNED]


# XML tag names for composite shapes
TAG_AGGREGATE = "aggregate"
TAG_ITERABLE = "iterable"
TAG_TUPLE = "tuple"
TAG_OPTIONAL = "optional"
TAG_UNIQUE_PTR = "unique_ptr"


# =============================================================================
# Primitives
# =============================================================================

_BUILTIN_DTYPES = {
    bool: np.dtype(np.bool_),
    int: np.dtype(np.int64),
    float: np.dtype(np.float64),
    Char: np.dtype(np.int8),
}

# Builtin annotations decode back to builtin values
_BUILTIN_CONVERTERS = {
    bool: bool,
    int: int,
    float: float,
    Char: int,
}

_ABSTRACT_SCALARS = {
    np.generic, np.number, np.integer, np.signedinteger,
    np.unsignedinteger, np.inexact, np.floating,
}


def _numpy_scalar_dtype(tp) -> Optional[np.dtype]:
    if not isinstance(tp, type) or tp in _ABSTRACT_SCALARS:
        return None
    if not issubclass(tp, (np.integer, np.floating, np.bool_)):
        return None
    return np.dtype(tp)


def primitive_dtype(tp) -> np.dtype:
    """Return the numpy dtype describing the native layout of a primitive."""
    tp = unwrap(tp)
    try:
        return _BUILTIN_DTYPES[tp]
    except (KeyError, TypeError):
        pass
    dtype = _numpy_scalar_dtype(tp)
    if dtype is None:
        raise UnsupportedType(f"{tp!r} is not a primitive type")
    return dtype


def primitive_converter(tp) -> Optional[Callable[[Any], Any]]:
    """Return the builtin constructor for builtin primitives, else None."""
    try:
        return _BUILTIN_CONVERTERS.get(unwrap(tp))
    except TypeError:
        return None


def pack_primitive(value, dtype: np.dtype) -> bytes:
    """Raw native bytes of a primitive value."""
    return np.asarray(value, dtype=dtype).tobytes()


def unpack_primitive(data, dtype: np.dtype, convert=None):
    """Rebuild a primitive from exactly ``dtype.itemsize`` raw bytes."""
    value = np.frombuffer(data, dtype=dtype, count=1)[0]
    return convert(value) if convert else value


def tag_name(tp) -> str:
    """XML tag of a primitive type."""
    kind = primitive_dtype(tp).kind
    if kind in "ub":
        return "unsigned_int"
    if kind == "i":
        return "int"
    if kind == "f":
        return "float"
    return "unknown"


# =============================================================================
# Classification
# =============================================================================

def unwrap(tp):
    """Strip Annotated metadata other than the Owned marker."""
    while get_origin(tp) is Annotated:
        base, *metadata = get_args(tp)
        if any(m is OWNED for m in metadata):
            return tp
        tp = base
    return tp


def _is_owned(tp) -> bool:
    if get_origin(tp) is not Annotated:
        return False
    return any(m is OWNED for m in get_args(tp)[1:])


def _nullable_inner(tp):
    if get_origin(tp) not in (Union, types.UnionType):
        return None
    args = get_args(tp)
    inner = [a for a in args if a is not type(None)]
    if len(inner) != 1 or len(inner) == len(args):
        return None
    return inner[0]


def _is_named_tuple(tp) -> bool:
    return isinstance(tp, type) and issubclass(tp, tuple) and hasattr(tp, "_fields")


def _is_fixed_tuple(tp) -> bool:
    if get_origin(tp) is not tuple:
        return False
    args = get_args(tp)
    return not (len(args) == 2 and args[1] is Ellipsis)


_SEQUENCE_ORIGINS = (list, set, frozenset, collections.deque, tuple, dict, np.ndarray)


def _ndarray_element(tp):
    """numpy scalar type of NDArray[scalar], or None when it is not concrete."""
    args = get_args(tp)
    dtype_args = get_args(args[-1]) if args else ()
    if dtype_args and _numpy_scalar_dtype(dtype_args[0]) is not None:
        return dtype_args[0]
    return None


def _is_sequence(tp) -> bool:
    if tp is str or tp is bytes:
        return True
    if get_origin(tp) is np.ndarray:
        return _ndarray_element(tp) is not None
    return get_origin(tp) in _SEQUENCE_ORIGINS and bool(get_args(tp))


@functools.cache
def classify(tp) -> Shape:
    """Return the shape of a type.

    Raises:
        UnsupportedType: if the type fits none of the six shapes
    """
    tp = unwrap(tp)

    if _BUILTIN_DTYPES.get(tp) is not None or _numpy_scalar_dtype(tp) is not None:
        return Shape.PRIMITIVE
    if _nullable_inner(tp) is not None:
        return Shape.NULLABLE
    if _is_owned(tp):
        return Shape.OWNED_REFERENCE
    if _is_named_tuple(tp) or _is_fixed_tuple(tp):
        return Shape.PRODUCT
    if isinstance(tp, type) and dataclasses.is_dataclass(tp):
        return Shape.RECORD
    if _is_sequence(tp):
        return Shape.SEQUENCE

    if tp in _SEQUENCE_ORIGINS:
        raise UnsupportedType(
            f"{tp.__name__} needs an element type, e.g. {tp.__name__}[int]"
        )
    if get_origin(tp) is np.ndarray:
        raise UnsupportedType(
            f"{tp!r} needs a numpy scalar dtype, e.g. NDArray[np.float64]"
        )
    raise UnsupportedType(f"{tp!r} is not serializable")


# =============================================================================
# Constituents
# =============================================================================

def _resolve_hints(tp) -> dict:
    try:
        return get_type_hints(tp, include_extras=True)
    except NameError as e:
        raise UnsupportedType(f"Cannot resolve annotations of {tp!r}: {e}") from e


@functools.cache
def record_fields(tp) -> tuple[tuple[str, Any], ...]:
    """(name, type) of each constructor field of a dataclass, declaration order."""
    hints = _resolve_hints(tp)
    return tuple(
        (field.name, hints[field.name])
        for field in dataclasses.fields(tp)
        if field.init
    )


@functools.cache
def product_elements(tp) -> tuple:
    """Positional element types of a fixed-size tuple or NamedTuple."""
    tp = unwrap(tp)
    if _is_named_tuple(tp):
        hints = _resolve_hints(tp)
        try:
            return tuple(hints[name] for name in tp._fields)
        except KeyError as e:
            raise UnsupportedType(f"{tp.__name__} field {e} has no annotation") from e
    args = get_args(tp)
    if args == ((),):
        return ()
    return args


def product_builder(tp) -> Callable[[list], tuple]:
    """Constructor turning decoded elements into the product value."""
    tp = unwrap(tp)
    if _is_named_tuple(tp):
        return lambda items: tp(*items)
    return tuple


def optional_inner(tp):
    """Inner type of a Nullable or OwnedReference type."""
    tp = unwrap(tp)
    if _is_owned(tp):
        tp = get_args(tp)[0]
    inner = _nullable_inner(tp)
    if inner is None:
        raise UnsupportedType(f"{tp!r} is not optional")
    return inner


class SequenceAdapter(NamedTuple):
    """How to iterate and rebuild one kind of container.

    ``items`` yields the elements to write, ``build`` makes the container
    from the decoded elements, and ``from_array`` (when set) makes it
    straight from a numpy array of primitive elements.
    """
    element: Any
    items: Callable[[Any], Iterable]
    build: Callable[[list], Any]
    from_array: Optional[Callable[[np.ndarray], Any]] = None


def _str_items(value: str) -> list[int]:
    return np.frombuffer(value.encode("utf-8", "surrogateescape"), dtype=np.int8).tolist()


def _str_build(items: list) -> str:
    return np.array(items, dtype=np.int8).tobytes().decode("utf-8", "surrogateescape")


def _identity(value):
    return value


@functools.cache
def sequence_adapter(tp) -> SequenceAdapter:
    tp = unwrap(tp)
    if tp is str:
        return SequenceAdapter(
            Char, _str_items, _str_build,
            lambda arr: arr.tobytes().decode("utf-8", "surrogateescape"),
        )
    if tp is bytes:
        return SequenceAdapter(np.uint8, _identity, bytes, lambda arr: arr.tobytes())

    origin = get_origin(tp)
    args = get_args(tp)
    if origin is dict:
        key, value = args
        return SequenceAdapter(tuple[key, value], dict.items, dict)
    if origin is tuple:
        return SequenceAdapter(args[0], _identity, tuple)
    if origin is np.ndarray:
        element = _ndarray_element(tp)
        dtype = primitive_dtype(element)
        return SequenceAdapter(
            element,
            np.ravel,
            lambda items: np.array(items, dtype=dtype),
            _identity,
        )
    if origin in (list, set, frozenset, collections.deque):
        return SequenceAdapter(args[0], _identity, origin)
    raise UnsupportedType(f"{tp!r} is not a sequence")


def sequence_element(tp):
    """Element type of a Sequence type; (key, value) pairs for dict."""
    return sequence_adapter(tp).element
