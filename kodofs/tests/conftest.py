"""Module with in-memory fakes of the Kodo list API and of object downloads."""

import io
import logging
import posixpath
import threading
from typing import Dict, List, Optional

import pytest

from kodofs.bucket import Bucket
from kodofs.common import FileInfo, StreamFile
from kodofs.kodo.auth import Credentials
from kodofs.kodo.client import ListItem, ListResult
from kodofs.logger import log, set_debug

# Put time of all fake objects (in units of 100ns), 2020-09-13T12:26:40Z
PUT_TIME = 16_000_000_000_000_000
MTIME_NS = PUT_TIME * 100


class FakeKodoClient:
    """Serves list calls from a dict of keys, paginated like the RSF service."""

    def __init__(self, objects: Dict[str, bytes]):
        self.objects = objects
        self.calls: List[tuple] = []
        self.error: Optional[Exception] = None

        self._lock = threading.Lock()

    def list_files(self, bucket, prefix="", delimiter="", limit=1000, marker=""):
        with self._lock:
            self.calls.append((bucket, prefix, delimiter, limit, marker))

        if self.error is not None:
            raise self.error

        items: List[ListItem] = []
        common_prefixes: List[str] = []
        last_key = ""

        for key in sorted(self.objects):
            if not key.startswith(prefix) or key <= marker:
                continue

            # Keys grouped into the common prefix that ended the previous page
            if marker.endswith(delimiter or "\0") and key.startswith(marker):
                continue

            if len(items) + len(common_prefixes) == limit:
                return ListResult(items, common_prefixes, last_key)

            rest = key[len(prefix) :]

            if delimiter and delimiter in rest:
                common_prefix = prefix + rest[: rest.index(delimiter) + len(delimiter)]

                if common_prefix not in common_prefixes:
                    common_prefixes.append(common_prefix)
                    last_key = common_prefix

                continue

            items.append(
                ListItem(key, fsize=len(self.objects[key]), put_time=PUT_TIME)
            )
            last_key = key

        return ListResult(items, common_prefixes, "")


class SequentialStream(io.RawIOBase):
    """Stream that can only be read from start to end, like an HTTP response body."""

    def __init__(self, data: bytes):
        super().__init__()
        self._data = io.BytesIO(data)

    def readable(self):
        return True

    def readinto(self, b):
        return self._data.readinto(b)


class FakeOpener:
    """Opens objects from a dict of keys and counts the downloads."""

    def __init__(self, objects: Dict[str, bytes]):
        self.objects = objects
        self.opened: List[str] = []
        self.error: Optional[Exception] = None

        self._lock = threading.Lock()

    def open(self, url, key):
        with self._lock:
            self.opened.append(key)

        if self.error is not None:
            raise self.error

        if key not in self.objects:
            raise FileNotFoundError(key)

        data = self.objects[key]
        info = FileInfo(posixpath.basename(key), size=len(data), mtime_ns=MTIME_NS)

        return StreamFile(info, SequentialStream(data), key)


@pytest.fixture
def objects() -> Dict[str, bytes]:
    return {
        "a/x.txt": b"hello",
        "a/y/z.txt": b"world!",
        "b.txt": b"",
        "docs/index.html": b"<html></html>",
    }


@pytest.fixture
def kodo_client(objects):
    return FakeKodoClient(objects)


@pytest.fixture
def opener(objects):
    return FakeOpener(objects)


@pytest.fixture
def bucket(kodo_client, opener):
    return Bucket(
        Credentials("ak", "sk"),
        "test",
        "https://cdn.example.com/",
        prepare=lambda name: opener,
        client=kodo_client,
    )


@pytest.fixture(autouse=True)
def reset_log_level():
    yield

    # The command-line interface changes the level of the global logger
    log.setLevel(logging.NOTSET)
    set_debug(0)
