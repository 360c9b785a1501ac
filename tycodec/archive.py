"""
archive.py - Convenience functions for the binary and XML archives

Usage:
    import tycodec as tc

    # Binary (the reader supplies the type)
    data = tc.dump(config)
    config = tc.load(Config, data)
    tc.dump_file(config, "config.bin")
    config = tc.load_file(Config, "config.bin")

    # XML, text or Base64 leaves
    doc = tc.dump_xml(config)
    config = tc.load_xml(Config, doc)
    tc.dump_xml_file(config, "config.xml", tc.XmlConfig(use_base64=True))
    config = tc.load_xml_file(Config, "config.xml", tc.XmlConfig(use_base64=True))

Containers carry no element type at runtime, so pass it explicitly:
    data = tc.dump([1, 2, 3], list[int])
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, BinaryIO, Optional, Union

from .binary_archive import BinaryReader, BinaryWriter, Cursor, codec_for
from .config import XmlConfig
from .xml_archive import XmlReader, XmlWriter, parse_file, parse_string, root_of, to_string, write_file

_logger = logging.getLogger("tycodec.archive")


def _resolve(value: Any, tp) -> Any:
    return type(value) if tp is None else tp


# Binary


def length(value: Any, tp=None) -> int:
    """Number of bytes ``dump`` produces for a value."""
    return codec_for(_resolve(value, tp)).length(value)


def dump(value: Any, tp=None) -> bytes:
    """Encode a value to binary.

    Args:
        value: Value to serialize
        tp: Type of the value (default: the value's class)

    Returns:
        Encoded bytes, exactly ``length(value, tp)`` long

    Raises:
        UnsupportedType: if the type is not serializable

    Example:
        data = tc.dump(Point(1, 2))
        data = tc.dump({"a": 1.0}, dict[str, float])
    """
    data = codec_for(_resolve(value, tp)).dump(value)
    _logger.debug(f"Encoded {len(data)} bytes")
    return data


def load(tp, data) -> Any:
    """Decode a binary value of type ``tp``.

    Bytes after the value are ignored; use ``read`` with a ``Cursor`` to
    decode several values from one stream.

    Args:
        tp: Type that was used to encode the data
        data: bytes, bytearray or memoryview

    Raises:
        TruncatedInput: if the data ends before the value is complete
    """
    return codec_for(tp).load(data)


def read(tp, cursor: Cursor) -> Any:
    """Decode the next value of type ``tp`` and advance the cursor past it."""
    return codec_for(tp).read(cursor)


def dump_file(value: Any, dest: Union[str, Path, BinaryIO], tp=None):
    """Write a value to a binary archive file.

    Example:
        tc.dump_file(config, "config.bin")
    """
    with BinaryWriter(dest) as writer:
        writer.write(value, tp)


def load_file(tp, source: Union[str, Path, BinaryIO]) -> Any:
    """Load a value of type ``tp`` from a binary archive file.

    Example:
        config = tc.load_file(Config, "config.bin")
    """
    with BinaryReader(source) as reader:
        return reader.read(tp)


# XML


def dump_xml(value: Any, config: Optional[XmlConfig] = None, tp=None) -> ET.ElementTree:
    """Encode a value to an XML document.

    Args:
        value: Value to serialize
        config: Leaf encoding mode (default: decimal text)
        tp: Type of the value (default: the value's class)
    """
    return ET.ElementTree(XmlWriter(config).write(value, _resolve(value, tp)))


def load_xml(tp, doc: Union[ET.ElementTree, ET.Element], config: Optional[XmlConfig] = None) -> Any:
    """Decode a value of type ``tp`` from an XML document.

    ``config`` must match the one used by ``dump_xml``.

    Raises:
        InvalidDocument: if the document has no root or holds unreadable text
        MissingAttribute: if an element lacks a required attribute
        MissingChildElement: if an element lacks a required child
    """
    return XmlReader(config).read(root_of(doc), tp)


def dumps_xml(value: Any, config: Optional[XmlConfig] = None, tp=None) -> str:
    """Serialize to an XML string.

    Example:
        text = tc.dumps_xml(Point(1, 2))
    """
    return to_string(XmlWriter(config).write(value, _resolve(value, tp)))


def loads_xml(tp, text: Union[str, bytes], config: Optional[XmlConfig] = None) -> Any:
    """Parse a value of type ``tp`` from an XML string.

    Example:
        point = tc.loads_xml(Point, text)
    """
    return load_xml(tp, parse_string(text), config)


def dump_xml_file(
    value: Any,
    dest: Union[str, Path, BinaryIO],
    config: Optional[XmlConfig] = None,
    tp=None,
):
    """Write a value to an XML file.

    Example:
        tc.dump_xml_file(head, "list.xml", tp=Owned[Node])
    """
    write_file(dump_xml(value, config, tp), dest)


def load_xml_file(tp, source: Union[str, Path, BinaryIO], config: Optional[XmlConfig] = None) -> Any:
    """Load a value of type ``tp`` from an XML file.

    Raises:
        InvalidDocument: if the file is missing, empty or not XML
    """
    return load_xml(tp, parse_file(source), config)
