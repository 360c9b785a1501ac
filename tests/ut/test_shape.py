import collections
from typing import Annotated, Any, Optional, Union

import numpy as np
import pytest
from numpy.typing import NDArray

from tests.models import Example, IterableRecord, Node, Point, Trio
from tycodec import Char, Owned, Shape, UnsupportedType, classify
from tycodec.shape import (
    optional_inner,
    primitive_dtype,
    product_elements,
    record_fields,
    sequence_adapter,
    sequence_element,
    tag_name,
)


@pytest.mark.ut
@pytest.mark.parametrize(
    "tp", [bool, int, float, Char, np.int8, np.uint32, np.int64, np.float32, np.bool_]
)
def test_scalars_are_primitive(tp):
    assert classify(tp) is Shape.PRIMITIVE


@pytest.mark.ut
@pytest.mark.parametrize(
    "tp",
    [
        list[int],
        set[float],
        frozenset[np.int16],
        collections.deque[Char],
        tuple[int, ...],
        dict[str, int],
        str,
        bytes,
        NDArray[np.float64],
    ],
)
def test_containers_are_sequences(tp):
    assert classify(tp) is Shape.SEQUENCE


@pytest.mark.ut
def test_records_products_and_optionals():
    assert classify(Trio) is Shape.RECORD
    assert classify(tuple[int, str]) is Shape.PRODUCT
    assert classify(tuple[()]) is Shape.PRODUCT
    assert classify(Optional[int]) is Shape.NULLABLE
    assert classify(int | None) is Shape.NULLABLE
    assert classify(Owned[Node]) is Shape.OWNED_REFERENCE


@pytest.mark.ut
def test_named_tuple_is_product_before_sequence():
    assert classify(Point) is Shape.PRODUCT
    assert product_elements(Point) == (np.int16, float)


@pytest.mark.ut
def test_iterable_dataclass_is_record():
    assert classify(IterableRecord) is Shape.RECORD


@pytest.mark.ut
def test_annotated_metadata_is_ignored():
    assert classify(Annotated[int, "meters"]) is Shape.PRIMITIVE
    assert classify(Annotated[list[int], "ids"]) is Shape.SEQUENCE


@pytest.mark.ut
@pytest.mark.parametrize(
    "tp", [object, list, dict, Union[int, str], Optional[Union[int, str]], np.integer, complex]
)
def test_unsupported_types(tp):
    with pytest.raises(UnsupportedType):
        classify(tp)


@pytest.mark.ut
def test_unparameterized_container_message():
    with pytest.raises(UnsupportedType, match=r"list\[int\]"):
        classify(list)


@pytest.mark.ut
def test_record_fields_resolve_forward_references():
    fields = dict(record_fields(Node))
    assert fields["value"] is int
    assert classify(fields["next"]) is Shape.OWNED_REFERENCE
    assert optional_inner(fields["next"]) is Node


@pytest.mark.ut
def test_record_fields_keep_declaration_order():
    names = [name for name, _ in record_fields(Example)]
    assert names[:5] == ["a", "b", "c", "d", "text"]


@pytest.mark.ut
def test_optional_inner():
    assert optional_inner(Optional[str]) is str
    assert optional_inner(Owned[Trio]) is Trio


@pytest.mark.ut
def test_sequence_adapters():
    assert sequence_adapter(dict[str, int]).element == tuple[str, int]
    assert sequence_adapter(str).element is Char
    assert sequence_adapter(bytes).element is np.uint8
    assert sequence_adapter(NDArray[np.float32]).element is np.float32
    assert sequence_adapter(set[int]).build([1, 2]) == {1, 2}


@pytest.mark.ut
def test_primitive_layout():
    assert primitive_dtype(int).itemsize == 8
    assert primitive_dtype(bool).itemsize == 1
    assert primitive_dtype(Char).itemsize == 1
    assert primitive_dtype(np.float32).itemsize == 4


@pytest.mark.ut
def test_tag_names():
    assert tag_name(int) == "int"
    assert tag_name(Char) == "int"
    assert tag_name(np.uint64) == "unsigned_int"
    assert tag_name(bool) == "unsigned_int"
    assert tag_name(float) == "float"
    assert tag_name(np.float32) == "float"


@pytest.mark.ut
def test_sequence_element():
    assert sequence_element(list[Point]) is Point
    assert sequence_element(dict[str, int]) == tuple[str, int]
    assert sequence_element(tuple[float, ...]) is float
    assert sequence_element(str) is Char


@pytest.mark.ut
@pytest.mark.parametrize("tp", [NDArray[Any], np.ndarray[Any, np.dtype[np.object_]]])
def test_ndarray_needs_concrete_scalar_dtype(tp):
    with pytest.raises(UnsupportedType, match="numpy scalar dtype"):
        classify(tp)
