import pytest

from tests.models import Example, Node
from tycodec import Owned, XmlConfig


@pytest.fixture
def example():
    return Example()


@pytest.fixture
def linked_list():
    return Node.make_list(10)


@pytest.fixture
def owned_node_type():
    return Owned[Node]


@pytest.fixture(params=[False, True], ids=["text", "base64"])
def xml_config(request) -> XmlConfig:
    return XmlConfig(use_base64=request.param)
