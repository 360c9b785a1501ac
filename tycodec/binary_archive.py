"""
binary_archive.py - Type-driven binary codec

Binary format specification:
- Primitives: raw bytes in native endianness (dtype.itemsize bytes)
- Records: fields back to back in declaration order (names are NOT stored)
- Sequences: uint64 count prefix (native endianness) + elements
- Products: elements back to back in positional order
- Nullable / Owned: 1-byte presence flag (0/1) + value if present
- No header, no type tags, no padding: the reader must know the type

Usage:
    from tycodec.binary_archive import codec_for, Cursor

    codec = codec_for(list[np.int32])
    data = codec.dump([1, 2, 3])          # 8 + 3 * 4 bytes
    values = codec.load(data)

    # Several values back to back in one stream
    cursor = Cursor(data + data)
    first = codec.read(cursor)
    second = codec.read(cursor)
"""

from __future__ import annotations

import functools
import logging
import struct
from pathlib import Path
from typing import Any, BinaryIO, Optional, Union

import numpy as np

from .errors import TruncatedInput
from .shape import (
    Shape,
    classify,
    optional_inner,
    pack_primitive,
    primitive_converter,
    primitive_dtype,
    product_builder,
    product_elements,
    record_fields,
    sequence_adapter,
    unpack_primitive,
    unwrap,
)

_logger = logging.getLogger("tycodec.binary_archive")

COUNT_FORMAT = "=Q"
COUNT_SIZE = struct.calcsize(COUNT_FORMAT)
FLAG_SIZE = 1

# Elements that encode to zero bytes cannot be checked against the data
# left, so their count is capped instead.
MAX_EMPTY_ELEMENTS = 1 << 20


class Cursor:
    """Read-only view over a byte sequence that only moves forward."""

    def __init__(self, data):
        self._view = memoryview(data).cast("B")
        self._position = 0

    def __len__(self) -> int:
        return len(self._view)

    @property
    def position(self) -> int:
        return self._position

    @property
    def remaining(self) -> int:
        return len(self._view) - self._position

    def take(self, size: int) -> memoryview:
        """Consume the next ``size`` bytes."""
        if size > self.remaining:
            raise TruncatedInput(
                f"Reached end of data: need {size} bytes, {self.remaining} remain",
                self._position,
            )
        chunk = self._view[self._position : self._position + size]
        self._position += size
        return chunk


# =============================================================================
# Codecs
# =============================================================================

class BinaryCodec:
    """Length, write and read contract for one type.

    ``length(value)`` is always the number of bytes ``write`` produces,
    and ``read`` consumes exactly that many bytes from the cursor.
    """

    shape: Shape

    def __init__(self, tp):
        self.tp = tp

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.tp!r})"

    @property
    def min_length(self) -> int:
        """Smallest encoded length of any value of this type."""
        raise NotImplementedError

    def length(self, value) -> int:
        raise NotImplementedError

    def write(self, value, view: memoryview) -> int:
        raise NotImplementedError

    def read(self, cursor: Cursor):
        raise NotImplementedError

    def dump(self, value) -> bytes:
        """Encode a value into a buffer of exactly ``length(value)`` bytes."""
        buffer = bytearray(self.length(value))
        self.write(value, memoryview(buffer))
        return bytes(buffer)

    def load(self, data):
        return self.read(Cursor(data))


class PrimitiveCodec(BinaryCodec):
    shape = Shape.PRIMITIVE

    def __init__(self, tp):
        super().__init__(tp)
        self.dtype = primitive_dtype(tp)
        self.convert = primitive_converter(tp)

    @property
    def min_length(self) -> int:
        return self.dtype.itemsize

    def length(self, value) -> int:
        return self.dtype.itemsize

    def write(self, value, view: memoryview) -> int:
        view[: self.dtype.itemsize] = pack_primitive(value, self.dtype)
        return self.dtype.itemsize

    def read(self, cursor: Cursor):
        return unpack_primitive(cursor.take(self.dtype.itemsize), self.dtype, self.convert)


class RecordCodec(BinaryCodec):
    shape = Shape.RECORD

    @functools.cached_property
    def fields(self) -> list[tuple[str, BinaryCodec]]:
        return [(name, codec_for(tp)) for name, tp in record_fields(self.tp)]

    @functools.cached_property
    def min_length(self) -> int:
        return sum(codec.min_length for _, codec in self.fields)

    def length(self, value) -> int:
        size = 0
        for name, codec in self.fields:
            size += codec.length(getattr(value, name))
        return size

    def write(self, value, view: memoryview) -> int:
        written = 0
        for name, codec in self.fields:
            written += codec.write(getattr(value, name), view[written:])
        return written

    def read(self, cursor: Cursor):
        values = {}
        for name, codec in self.fields:
            values[name] = codec.read(cursor)
        return self.tp(**values)


class SequenceCodec(BinaryCodec):
    shape = Shape.SEQUENCE
    min_length = COUNT_SIZE

    def __init__(self, tp):
        super().__init__(tp)
        self.adapter = sequence_adapter(tp)

    @functools.cached_property
    def element(self) -> BinaryCodec:
        return codec_for(self.adapter.element)

    def length(self, value) -> int:
        items = self.adapter.items(value)
        if isinstance(self.element, PrimitiveCodec):
            return COUNT_SIZE + len(items) * self.element.dtype.itemsize
        size = COUNT_SIZE
        for item in items:
            size += self.element.length(item)
        return size

    def write(self, value, view: memoryview) -> int:
        items = self.adapter.items(value)
        view[:COUNT_SIZE] = struct.pack(COUNT_FORMAT, len(items))

        if isinstance(self.element, PrimitiveCodec):
            # bulk copy, same bytes as writing element by element
            if not isinstance(items, np.ndarray):
                items = list(items)
            data = np.ascontiguousarray(items, dtype=self.element.dtype).tobytes()
            view[COUNT_SIZE : COUNT_SIZE + len(data)] = data
            return COUNT_SIZE + len(data)

        written = COUNT_SIZE
        for item in items:
            written += self.element.write(item, view[written:])
        return written

    def read(self, cursor: Cursor):
        count = struct.unpack(COUNT_FORMAT, cursor.take(COUNT_SIZE))[0]
        element = self.element
        if element.min_length and count > cursor.remaining // element.min_length:
            raise TruncatedInput(
                f"Sequence of {count} elements cannot fit in {cursor.remaining} bytes",
                cursor.position,
            )
        if not element.min_length and count > MAX_EMPTY_ELEMENTS:
            raise TruncatedInput(
                f"Sequence of {count} empty elements exceeds {MAX_EMPTY_ELEMENTS}",
                cursor.position,
            )

        if isinstance(element, PrimitiveCodec):
            chunk = cursor.take(count * element.dtype.itemsize)
            arr = np.frombuffer(chunk, dtype=element.dtype).copy()
            if self.adapter.from_array is not None:
                return self.adapter.from_array(arr)
            return self.adapter.build(arr.tolist() if element.convert else list(arr))

        items = []
        for _ in range(count):
            items.append(element.read(cursor))
        return self.adapter.build(items)


class ProductCodec(BinaryCodec):
    shape = Shape.PRODUCT

    @functools.cached_property
    def elements(self) -> list[BinaryCodec]:
        return [codec_for(tp) for tp in product_elements(self.tp)]

    @functools.cached_property
    def min_length(self) -> int:
        return sum(codec.min_length for codec in self.elements)

    def length(self, value) -> int:
        size = 0
        for codec, item in zip(self.elements, value):
            size += codec.length(item)
        return size

    def write(self, value, view: memoryview) -> int:
        written = 0
        for codec, item in zip(self.elements, value):
            written += codec.write(item, view[written:])
        return written

    def read(self, cursor: Cursor):
        items = []
        for codec in self.elements:
            items.append(codec.read(cursor))
        return product_builder(self.tp)(items)


class OptionalCodec(BinaryCodec):
    """Presence flag followed by the inner value; serves Nullable and Owned.

    When the inner type is a record whose last field has this same type
    (a linked list), the chain is walked in a loop, so its length is not
    bounded by the recursion limit. The bytes are the same either way.
    """

    min_length = FLAG_SIZE

    def __init__(self, tp, shape: Shape = Shape.NULLABLE):
        super().__init__(tp)
        self.shape = shape

    @functools.cached_property
    def inner(self) -> BinaryCodec:
        return codec_for(optional_inner(self.tp))

    @functools.cached_property
    def link(self) -> Optional[str]:
        """Name of the inner record field that continues the chain, if any."""
        inner = self.inner
        if isinstance(inner, RecordCodec) and inner.fields and inner.fields[-1][1] is self:
            return inner.fields[-1][0]
        return None

    def length(self, value) -> int:
        if self.link is None:
            if value is None:
                return FLAG_SIZE
            return FLAG_SIZE + self.inner.length(value)

        head = self.inner.fields[:-1]
        size = FLAG_SIZE
        while value is not None:
            size += FLAG_SIZE
            for name, codec in head:
                size += codec.length(getattr(value, name))
            value = getattr(value, self.link)
        return size

    def write(self, value, view: memoryview) -> int:
        if self.link is None:
            if value is None:
                view[0] = 0
                return FLAG_SIZE
            view[0] = 1
            return FLAG_SIZE + self.inner.write(value, view[FLAG_SIZE:])

        head = self.inner.fields[:-1]
        written = 0
        while value is not None:
            view[written] = 1
            written += FLAG_SIZE
            for name, codec in head:
                written += codec.write(getattr(value, name), view[written:])
            value = getattr(value, self.link)
        view[written] = 0
        return written + FLAG_SIZE

    def read(self, cursor: Cursor):
        if self.link is None:
            has_value = cursor.take(FLAG_SIZE)[0]
            if has_value:
                return self.inner.read(cursor)
            return None

        head = self.inner.fields[:-1]
        chain = []
        while cursor.take(FLAG_SIZE)[0]:
            values = {}
            for name, codec in head:
                values[name] = codec.read(cursor)
            chain.append(values)

        # build from the tail so each node gets its successor
        value = None
        for values in reversed(chain):
            values[self.link] = value
            value = self.inner.tp(**values)
        return value


# =============================================================================
# Registry
# =============================================================================

_CODECS: dict[Any, BinaryCodec] = {}


def codec_for(tp) -> BinaryCodec:
    """Return the binary codec of a type, building it on first use.

    Raises:
        UnsupportedType: if the type is not serializable
    """
    try:
        return _CODECS[tp]
    except KeyError:
        pass

    shape = classify(tp)
    base = unwrap(tp)
    if shape is Shape.PRIMITIVE:
        codec = PrimitiveCodec(base)
    elif shape is Shape.RECORD:
        codec = RecordCodec(base)
    elif shape is Shape.SEQUENCE:
        codec = SequenceCodec(base)
    elif shape is Shape.PRODUCT:
        codec = ProductCodec(base)
    else:
        codec = OptionalCodec(base, shape)

    _logger.debug(f"Built {codec!r}")
    return _CODECS.setdefault(tp, codec)


# =============================================================================
# File reader and writer
# =============================================================================

class BinaryReader:
    """Reader for binary archive files.

    The file is read once; each ``read`` call decodes the next value, so a
    file written by several ``BinaryWriter.write`` calls can be read back
    value by value.
    """

    def __init__(self, source: Union[str, Path, BinaryIO]):
        if isinstance(source, (str, Path)):
            self._file = open(source, "rb")
            self._owns_file = True
        else:
            self._file = source
            self._owns_file = False
        self._cursor = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def close(self):
        if self._owns_file:
            self._file.close()

    @property
    def cursor(self) -> Cursor:
        if self._cursor is None:
            data = self._file.read()
            _logger.debug(f"Read {len(data)} bytes from {getattr(self._file, 'name', self._file)}")
            self._cursor = Cursor(data)
        return self._cursor

    def read(self, tp):
        """Decode the next value of type ``tp``."""
        return codec_for(tp).read(self.cursor)


class BinaryWriter:
    """Writer for binary archive files.

    A path is opened only once the first value has been encoded, so an
    encoding error leaves an existing file untouched.
    """

    def __init__(self, dest: Union[str, Path, BinaryIO]):
        if isinstance(dest, (str, Path)):
            self._path = dest
            self._file = None
            self._owns_file = True
        else:
            self._path = None
            self._file = dest
            self._owns_file = False

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def close(self):
        if self._owns_file and self._file is not None:
            self._file.close()

    def write(self, value, tp=None) -> int:
        """Encode one value after anything already written. Returns its length."""
        data = codec_for(type(value) if tp is None else tp).dump(value)
        if self._file is None:
            self._file = open(self._path, "wb")
        self._file.write(data)
        _logger.debug(f"Wrote {len(data)} bytes to {getattr(self._file, 'name', self._file)}")
        return len(data)
