"""
Serialization of dataclasses with MessagePack or JSON.

kodofs persists two kinds of records on disk: the metadata of remote objects that is
stored inside stub symlinks, and the region discovery cache. The first has to be as
compact as possible because it ends up in a symlink target, which is what MessagePack
is good at. The second is a small index file that is nice to be able to inspect by
hand, so it is stored as JSON.

Dataclasses are serialized as {"__data__": {"type": ..., "data": ...}} and only types
that were registered up front can be reconstructed. Registration follows type
annotations, so registering a container dataclass also registers every dataclass used
by its members.
"""

from dataclasses import is_dataclass
import json
import typing
from typing import Any, Dict, IO, List

import msgpack


class Encoding:
    """
    Serialization and deserialization of objects using JSON or MessagePack.

    MessagePack serialization is used for compact stub records and JSON serialization
    for simple disk storage.
    """

    def __init__(self, *dataclasses: type):
        """Initialize a (de)serializer with support for the given dataclass types."""
        self._dataclasses: Dict[str, type] = {}

        for dataclass in dataclasses:
            self.register_dataclasses(dataclass)

    def register_dataclasses(self, seed_type: type) -> None:
        """
        Register all dataclass types used within the specified type.

        This includes the class itself, its class members, nested dataclasses, and
        container types like List and Optional.
        """
        for dataclass in self._discover_dataclasses(seed_type):
            self._dataclasses[dataclass.__qualname__] = dataclass

    def pack(self, obj: Any) -> bytes:
        """Serialize an object using MessagePack."""
        return msgpack.packb(obj, default=self.serialize_obj)

    def unpack(self, data: bytes) -> Any:
        """Deserialize an object using MessagePack."""
        return msgpack.unpackb(data, object_hook=self.deserialize_obj)

    def dump_json(self, obj: Any, fp: IO[str]) -> None:
        """Serialize an object to JSON."""
        json.dump(obj, fp, default=self.serialize_obj)

    def load_json(self, fp: IO[str]) -> Any:
        """Deserialize an object from JSON."""
        return json.load(fp, object_hook=self.deserialize_obj)

    def serialize_obj(self, obj: Any) -> Any:
        """Turn a dataclass into a serialization friendly representation."""
        if obj.__class__.__qualname__ in self._dataclasses:
            return self._serialize_dataclass(obj)
        else:
            raise ValueError(f"unserializable object {obj}")

    def deserialize_obj(self, obj: Any) -> Any:
        """Reconstruct a dataclass from a serialized representation."""
        if isinstance(obj, dict) and "__data__" in obj:
            return self._deserialize_dataclass(obj)
        else:
            return obj

    #
    # Data class serialization
    #

    @classmethod
    def _serialize_dataclass(cls, obj: Any) -> Dict:
        """Turn a dataclass into a serialization friendly dict."""
        return {"__data__": {"type": obj.__class__.__qualname__, "data": obj.__dict__}}

    def _deserialize_dataclass(self, obj: Dict) -> Any:
        """
        Reconstruct a dataclass from its serialized representation.

        Only previously registered dataclass types can be deserialized.
        """
        type_name = obj["__data__"]["type"]
        type_data = obj["__data__"]["data"]

        if type_name in self._dataclasses:
            try:
                return self._dataclasses[type_name](**type_data)
            except Exception as e:
                raise TypeError(f"failed to deserialize {type_name}: {e}")
        else:
            raise TypeError(f"unknown dataclass '{type_name}'")

    @staticmethod
    def _discover_dataclasses(*seed_types: type) -> List[type]:
        """
        Find all dataclass types used with the specified type.

        This includes the class itself, its class members, nested dataclasses, and
        container types like List and Optional.
        """
        candidates = set(seed_types)
        explored = set()
        dataclasses = set()

        while len(candidates) > 0:
            candidate = candidates.pop()

            if candidate not in explored:
                explored.add(candidate)
            else:
                continue

            if is_dataclass(candidate):
                dataclasses.add(candidate)

                # Discover member types of dataclass
                for subtype in typing.get_type_hints(candidate).values():
                    candidates.add(subtype)
            elif hasattr(candidate, "__origin__"):
                # Discover types nested in constructs like Optional[T] and List[T]
                for subtype in getattr(candidate, "__args__", ()):
                    candidates.add(subtype)

        return list(dataclasses)
