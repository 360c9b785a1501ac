"""
xml_archive.py - Type-driven XML codec

XML format specification:
- Primitives: <int|unsigned_int|float value="..."/> in text mode, or
  <int|unsigned_int|float base64="..."/> holding the raw native bytes
- Records: <aggregate> with one child per field, declaration order
- Sequences: <iterable size="N"> with one child per element
- Products: <tuple> with one child per positional element
- Nullable: <optional has_value="true|false"> with one child if present
- Owned: <unique_ptr has_value="true|false"> with one child if present
- Field names are NOT stored; tag names identify the shape, not the type

Example (a Node list of two values, text mode):

    <unique_ptr has_value="true">
      <aggregate>
        <int value="1" />
        <unique_ptr has_value="true">
          <aggregate>
            <int value="0" />
            <unique_ptr has_value="false" />
          </aggregate>
        </unique_ptr>
      </aggregate>
    </unique_ptr>
"""

from __future__ import annotations

import base64
import binascii
import itertools
import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import BinaryIO, Iterable, Union

import numpy as np

from .config import DEFAULT_XML_CONFIG, XmlConfig
from .errors import InvalidDocument, MissingAttribute, MissingChildElement, TruncatedInput
from .shape import (
    TAG_AGGREGATE,
    TAG_ITERABLE,
    TAG_OPTIONAL,
    TAG_TUPLE,
    TAG_UNIQUE_PTR,
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
    tag_name,
    unpack_primitive,
    unwrap,
)

_logger = logging.getLogger("tycodec.xml_archive")

_TRUE_TEXT = {"true", "1"}
_FALSE_TEXT = {"false", "0"}


def _format_bool(value: bool) -> str:
    return "true" if value else "false"


def _parse_bool(text: str) -> bool:
    lowered = text.strip().lower()
    if lowered in _TRUE_TEXT:
        return True
    if lowered in _FALSE_TEXT:
        return False
    raise ValueError(f"Invalid boolean: {text!r}")


def _format_number(value, dtype: np.dtype) -> str:
    scalar = np.asarray(value, dtype=dtype)[()]
    if dtype.kind == "f":
        # repr round-trips exactly
        return repr(float(scalar))
    return str(int(scalar))


def _parse_number(text: str, dtype: np.dtype):
    if dtype.kind == "f":
        number = float(text)
    elif dtype.kind == "b":
        number = _parse_bool(text)
    else:
        number = int(text)
    return np.asarray(number, dtype=dtype)[()]


class XmlWriter:
    """Builds the element tree of a value."""

    def __init__(self, config: XmlConfig = None):
        self._config = config or DEFAULT_XML_CONFIG

    def write(self, value, tp) -> ET.Element:
        tp = unwrap(tp)
        shape = classify(tp)

        if shape is Shape.PRIMITIVE:
            return self._write_primitive(value, tp)

        elif shape is Shape.RECORD:
            element = ET.Element(TAG_AGGREGATE)
            for name, field_tp in record_fields(tp):
                element.append(self.write(getattr(value, name), field_tp))
            return element

        elif shape is Shape.SEQUENCE:
            adapter = sequence_adapter(tp)
            items = adapter.items(value)
            element = ET.Element(TAG_ITERABLE, size=str(len(items)))
            for item in items:
                element.append(self.write(item, adapter.element))
            return element

        elif shape is Shape.PRODUCT:
            element = ET.Element(TAG_TUPLE)
            for item_tp, item in zip(product_elements(tp), value):
                element.append(self.write(item, item_tp))
            return element

        else:
            tag = TAG_OPTIONAL if shape is Shape.NULLABLE else TAG_UNIQUE_PTR
            element = ET.Element(tag, has_value=_format_bool(value is not None))
            if value is not None:
                element.append(self.write(value, optional_inner(tp)))
            return element

    def _write_primitive(self, value, tp) -> ET.Element:
        dtype = primitive_dtype(tp)
        element = ET.Element(tag_name(tp))
        if self._config.use_base64:
            encoded = base64.b64encode(pack_primitive(value, dtype)).decode("ascii")
            element.set("base64", encoded)
        else:
            element.set("value", _format_number(value, dtype))
        return element


class XmlReader:
    """Rebuilds a value from its element tree.

    Children are consumed in document order, one per expected sub-value;
    extra trailing children are ignored.
    """

    def __init__(self, config: XmlConfig = None):
        self._config = config or DEFAULT_XML_CONFIG
        self._path: list[str] = []

    @property
    def _context(self) -> str:
        return "/".join(self._path) if self._path else "root"

    def read(self, element: ET.Element, tp, label: str = None):
        self._path.append(label or element.tag)
        try:
            return self._read_element(element, tp)
        finally:
            self._path.pop()

    def _attribute(self, element: ET.Element, name: str) -> str:
        value = element.get(name)
        if value is None:
            raise MissingAttribute(f"Cannot find attribute '{name}'", context=self._context)
        return value

    def _next_child(self, children, what: str) -> ET.Element:
        child = next(children, None)
        if child is None:
            raise MissingChildElement(
                f"Cannot find child element for {what}", context=self._context
            )
        return child

    def _read_children(self, element: ET.Element, types_: Iterable, what: str) -> list:
        children = iter(element)
        items = []
        for index, item_tp in enumerate(types_):
            child = self._next_child(children, f"{what} {index}")
            items.append(self.read(child, item_tp, f"{child.tag}[{index}]"))
        return items

    def _read_element(self, element: ET.Element, tp):
        tp = unwrap(tp)
        shape = classify(tp)

        if shape is Shape.PRIMITIVE:
            return self._read_primitive(element, tp)

        elif shape is Shape.RECORD:
            fields = record_fields(tp)
            values = self._read_children(element, [t for _, t in fields], "field")
            return tp(**{name: value for (name, _), value in zip(fields, values)})

        elif shape is Shape.SEQUENCE:
            adapter = sequence_adapter(tp)
            size = self._read_size(element)
            elements = itertools.repeat(adapter.element, size)
            items = self._read_children(element, elements, "element")
            return adapter.build(items)

        elif shape is Shape.PRODUCT:
            items = self._read_children(element, product_elements(tp), "element")
            return product_builder(tp)(items)

        else:
            text = self._attribute(element, "has_value")
            try:
                has_value = _parse_bool(text)
            except ValueError as e:
                raise InvalidDocument(str(e), context=self._context) from e
            if not has_value:
                return None
            child = self._next_child(iter(element), "value")
            return self.read(child, optional_inner(tp))

    def _read_size(self, element: ET.Element) -> int:
        text = self._attribute(element, "size")
        try:
            size = int(text)
        except ValueError as e:
            raise InvalidDocument(f"Invalid size: {text!r}", context=self._context) from e
        if size < 0:
            raise InvalidDocument(f"Negative size: {size}", context=self._context)
        return size

    def _read_primitive(self, element: ET.Element, tp):
        dtype = primitive_dtype(tp)
        convert = primitive_converter(tp)

        if self._config.use_base64:
            text = self._attribute(element, "base64")
            try:
                raw = base64.b64decode(text, validate=True)
            except binascii.Error as e:
                raise InvalidDocument(f"Invalid Base64 {text!r}: {e}", context=self._context) from e
            if len(raw) < dtype.itemsize:
                raise TruncatedInput(
                    f"Base64 holds {len(raw)} bytes, need {dtype.itemsize}",
                    context=self._context,
                )
            return unpack_primitive(raw[: dtype.itemsize], dtype, convert)

        text = self._attribute(element, "value")
        try:
            value = _parse_number(text, dtype)
        except (ValueError, OverflowError) as e:
            raise InvalidDocument(
                f"Invalid {dtype.name} value {text!r}", context=self._context
            ) from e
        return convert(value) if convert else value


# =============================================================================
# Documents
# =============================================================================

def root_of(doc: Union[ET.ElementTree, ET.Element]) -> ET.Element:
    """Root element of a document.

    Raises:
        InvalidDocument: if the document has no root element
    """
    root = doc.getroot() if isinstance(doc, ET.ElementTree) else doc
    if root is None:
        raise InvalidDocument("Empty XML: no root element")
    return root


def parse_string(text: Union[str, bytes]) -> ET.ElementTree:
    try:
        return ET.ElementTree(ET.fromstring(text))
    except ET.ParseError as e:
        raise InvalidDocument(f"Invalid XML: {e}") from e


def parse_file(source: Union[str, Path, BinaryIO]) -> ET.ElementTree:
    """Parse an XML file; missing, empty and malformed files are InvalidDocument."""
    try:
        doc = ET.parse(source)
    except OSError as e:
        raise InvalidDocument(f"Cannot read XML file {source}: {e}") from e
    except ET.ParseError as e:
        raise InvalidDocument(f"Invalid XML in {source}: {e}") from e
    _logger.debug(f"Parsed XML document from {source}")
    return doc


def write_file(doc: ET.ElementTree, dest: Union[str, Path, BinaryIO]):
    ET.indent(doc)
    doc.write(dest, encoding="utf-8", xml_declaration=True)
    _logger.debug(f"Wrote XML document to {dest}")


def to_string(element: ET.Element) -> str:
    ET.indent(element)
    return ET.tostring(element, encoding="unicode")
