"""Type-driven binary and XML serialization."""

from .archive import (
    dump,
    dump_file,
    dump_xml,
    dump_xml_file,
    dumps_xml,
    length,
    load,
    load_file,
    load_xml,
    load_xml_file,
    loads_xml,
    read,
)
from .binary_archive import BinaryReader, BinaryWriter, Cursor, codec_for
from .config import XmlConfig
from .errors import (
    ArchiveError,
    InvalidDocument,
    MissingAttribute,
    MissingChildElement,
    TruncatedInput,
    UnsupportedType,
)
from .shape import Char, Owned, Shape, classify
from .xml_archive import XmlReader, XmlWriter

__all__ = [
    "ArchiveError",
    "BinaryReader",
    "BinaryWriter",
    "Char",
    "Cursor",
    "InvalidDocument",
    "MissingAttribute",
    "MissingChildElement",
    "Owned",
    "Shape",
    "TruncatedInput",
    "UnsupportedType",
    "XmlConfig",
    "XmlReader",
    "XmlWriter",
    "classify",
    "codec_for",
    "dump",
    "dump_file",
    "dump_xml",
    "dump_xml_file",
    "dumps_xml",
    "length",
    "load",
    "load_file",
    "load_xml",
    "load_xml_file",
    "loads_xml",
    "read",
]
