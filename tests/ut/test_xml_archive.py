import base64
import xml.etree.ElementTree as ET
from typing import Optional

import numpy as np
import pytest
from numpy.typing import NDArray
from pydantic import ValidationError

import tycodec as tc
from tests.models import Example, Node, Point, Tree, Trio, Trivial
from tycodec import (
    InvalidDocument,
    MissingAttribute,
    MissingChildElement,
    Owned,
    TruncatedInput,
    XmlConfig,
)

BASE64 = XmlConfig(use_base64=True)


@pytest.mark.ut
def test_record_layout_text_mode():
    root = tc.dump_xml(Trio()).getroot()

    assert root.tag == "aggregate"
    assert [child.tag for child in root] == ["int", "float", "unsigned_int"]
    assert [child.get("value") for child in root] == ["5", "10.0", "1"]


@pytest.mark.ut
def test_primitive_base64_holds_native_bytes():
    root = tc.dump_xml(np.int32(5), BASE64).getroot()

    assert root.tag == "int"
    assert root.get("value") is None
    assert base64.b64decode(root.get("base64")) == np.int32(5).tobytes()


@pytest.mark.ut
def test_composite_tags():
    root = tc.dump_xml(Example()).getroot()
    children = list(root)

    assert children[4].tag == "iterable"
    assert children[4].get("size") == "5"  # "Hello"
    assert children[9].tag == "tuple"
    assert len(children[9]) == 2
    assert children[12].tag == "unique_ptr"
    assert children[12].get("has_value") == "true"

    nontrivial = children[11]
    assert nontrivial[1].tag == "optional"
    assert nontrivial[1].get("has_value") == "true"


@pytest.mark.ut
def test_absent_optional_has_no_children():
    root = tc.dump_xml(None, tp=Optional[int]).getroot()
    assert root.tag == "optional"
    assert root.get("has_value") == "false"
    assert len(root) == 0


@pytest.mark.ut
def test_missing_child_of_present_optional():
    with pytest.raises(MissingChildElement):
        tc.loads_xml(Optional[int], '<optional has_value="true"/>')


@pytest.mark.ut
def test_missing_has_value_attribute():
    with pytest.raises(MissingAttribute):
        tc.loads_xml(Owned[Node], "<unique_ptr/>")


@pytest.mark.ut
def test_missing_size_attribute():
    with pytest.raises(MissingAttribute):
        tc.loads_xml(list[int], "<iterable/>")


@pytest.mark.ut
def test_missing_record_field():
    with pytest.raises(MissingChildElement) as exc:
        tc.loads_xml(Trio, '<aggregate><int value="5"/></aggregate>')
    assert "aggregate" in exc.value.context


@pytest.mark.ut
def test_fewer_elements_than_size():
    text = '<iterable size="3"><int value="1"/><int value="2"/></iterable>'
    with pytest.raises(MissingChildElement):
        tc.loads_xml(list[int], text)


@pytest.mark.ut
def test_extra_children_are_ignored():
    text = '<iterable size="1"><int value="1"/><int value="2"/></iterable>'
    assert tc.loads_xml(list[int], text) == [1]


@pytest.mark.ut
def test_value_attribute_required_in_text_mode():
    with pytest.raises(MissingAttribute):
        tc.loads_xml(int, '<int base64="BQAAAAAAAAA="/>')


@pytest.mark.ut
@pytest.mark.parametrize(
    "tp, text",
    [
        (int, '<int value="five"/>'),
        (np.int8, '<int value="300"/>'),
        (bool, '<unsigned_int value="maybe"/>'),
        (list[int], '<iterable size="-1"/>'),
        (list[int], '<iterable size="many"/>'),
        (Optional[int], '<optional has_value="perhaps"/>'),
    ],
)
def test_unreadable_text_is_invalid(tp, text):
    with pytest.raises(InvalidDocument):
        tc.loads_xml(tp, text)


@pytest.mark.ut
def test_invalid_base64():
    with pytest.raises(InvalidDocument):
        tc.loads_xml(int, '<int base64="not base64!"/>', BASE64)


@pytest.mark.ut
def test_short_base64_payload():
    short = base64.b64encode(b"\x01\x02\x03").decode("ascii")
    with pytest.raises(TruncatedInput):
        tc.loads_xml(int, f'<int base64="{short}"/>', BASE64)


@pytest.mark.ut
def test_malformed_xml_string():
    with pytest.raises(InvalidDocument):
        tc.loads_xml(int, "<int value=")


@pytest.mark.ut
def test_document_without_root():
    with pytest.raises(InvalidDocument):
        tc.load_xml(int, ET.ElementTree())


@pytest.mark.ut
def test_missing_file(tmp_path):
    with pytest.raises(InvalidDocument):
        tc.load_xml_file(int, tmp_path / "absent.xml")


@pytest.mark.ut
def test_empty_file(tmp_path):
    path = tmp_path / "empty.xml"
    path.write_text("")
    with pytest.raises(InvalidDocument):
        tc.load_xml_file(int, path)


@pytest.mark.ut
def test_errors_share_a_base():
    assert issubclass(InvalidDocument, tc.ArchiveError)
    assert issubclass(TruncatedInput, tc.ArchiveError)
    assert issubclass(tc.UnsupportedType, TypeError)


@pytest.mark.ut
def test_linked_list_round_trip(linked_list, owned_node_type, xml_config, tmp_path):
    path = tmp_path / "list.xml"
    tc.dump_xml_file(linked_list, path, xml_config, owned_node_type)

    loaded = tc.load_xml_file(owned_node_type, path, xml_config)
    assert loaded == linked_list


@pytest.mark.ut
def test_example_round_trip(example, xml_config):
    text = tc.dumps_xml(example, xml_config)
    assert tc.loads_xml(Example, text, xml_config) == example


@pytest.mark.ut
@pytest.mark.parametrize(
    "value, tp",
    [
        (0.1, float),
        (np.float32(0.1), np.float32),
        (np.uint64(2**64 - 1), np.uint64),
        (-(2**63), int),
        (True, bool),
        ("grüße", str),
        (b"\x00\x7f\xff", bytes),
        ({"k": (1, 2.5)}, dict[str, tuple[int, float]]),
        (Point(np.int16(7), -0.5), Point),
        ([Trivial(a=1), Trivial(a=2)], list[Trivial]),
        (Tree("root", [Tree("leaf")]), Tree),
        (None, Owned[Node]),
        ((), tuple[()]),
    ],
)
def test_round_trip(value, tp, xml_config):
    doc = tc.dump_xml(value, xml_config, tp)
    assert tc.load_xml(tp, doc, xml_config) == value


@pytest.mark.ut
def test_ndarray_round_trip(xml_config):
    arr = np.array([1.5, -2.0, 3.25], dtype=np.float32)
    doc = tc.dump_xml(arr, xml_config, NDArray[np.float32])
    np.testing.assert_array_equal(tc.load_xml(NDArray[np.float32], doc, xml_config), arr)


@pytest.mark.ut
def test_file_has_declaration(tmp_path):
    path = tmp_path / "point.xml"
    tc.dump_xml_file(Point(np.int16(1), 2.0), path)

    assert path.read_bytes().startswith(b"<?xml")
    assert tc.load_xml_file(Point, path) == Point(np.int16(1), 2.0)


@pytest.mark.ut
def test_config_is_frozen():
    config = XmlConfig()
    assert config.use_base64 is False
    with pytest.raises(ValidationError):
        config.use_base64 = True
    with pytest.raises(ValidationError):
        XmlConfig(use_b64=True)
