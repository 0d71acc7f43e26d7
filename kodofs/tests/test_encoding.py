import io
from dataclasses import dataclass
from typing import Dict, List, Optional

import pytest

from kodofs.common import FileInfo
from kodofs.encoding import Encoding


@dataclass
class Inner:
    value: int


@dataclass
class Outer:
    name: str
    inner: Inner
    inners: List[Inner]
    maybe: Optional[Inner]
    mapping: Dict[str, Inner]


def test_pack_dataclass():
    encoding = Encoding(FileInfo)

    info = FileInfo("file", size=3, mtime_ns=4, mode=5)

    assert encoding.unpack(encoding.pack(info)) == info


def test_pack_is_deterministic():
    encoding = Encoding(FileInfo)

    assert encoding.pack(FileInfo("a", 1)) == encoding.pack(FileInfo("a", 1))


def test_nested_dataclasses_discovered():
    encoding = Encoding(Outer)

    obj = Outer(
        name="x",
        inner=Inner(1),
        inners=[Inner(2), Inner(3)],
        maybe=None,
        mapping={"k": Inner(4)},
    )

    assert encoding.unpack(encoding.pack(obj)) == obj


def test_json_dataclass():
    encoding = Encoding(FileInfo)

    f = io.StringIO()
    encoding.dump_json({"a": FileInfo("a", 1)}, f)
    f.seek(0)

    assert encoding.load_json(f) == {"a": FileInfo("a", 1)}


def test_plain_values():
    encoding = Encoding()

    assert encoding.unpack(encoding.pack({"a": [1, 2, b"3"]})) == {"a": [1, 2, b"3"]}


def test_unregistered_dataclass_serialization():
    encoding = Encoding()

    with pytest.raises(Exception):
        encoding.pack(Inner(1))


def test_unregistered_dataclass_deserialization():
    data = Encoding(Inner).pack(Inner(1))

    with pytest.raises(TypeError):
        Encoding(FileInfo).unpack(data)


def test_malformed_dataclass_deserialization():
    data = Encoding(Inner).pack(Inner(1))

    @dataclass
    class Inner2:
        other: int

    Inner2.__qualname__ = "Inner"

    with pytest.raises(TypeError):
        Encoding(Inner2).unpack(data)
