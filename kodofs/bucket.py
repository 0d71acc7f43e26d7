"""
Module that exposes a bucket as a read-only file system.

Kodo has no concept of directories. A name refers to a file if there's an object with
that exact key, and to a directory if there's at least one object whose key starts with
the name followed by a slash. Opening a name therefore first tries to download the
object and falls back to listing the name as a directory prefix.

Objects can be uploaded through the bucket handle as well, one form request per object.
Uploads bypass any local cache on top of the bucket.
"""

from __future__ import annotations

from email.utils import parsedate_to_datetime
import errno
import io
import os
import posixpath
import time
from typing import BinaryIO, Callable, List, Optional, Protocol
from urllib.parse import quote

import requests

import kodofs.constants as constants
from kodofs.common import DirFile, File, FileInfo, StreamFile
from kodofs.kodo.auth import Credentials
from kodofs.kodo.client import KodoClient, PutResult, raise_for_response
from kodofs.kodo.listing import Lister, ListIterator, WalkFunction
from kodofs.logger import net_log


def object_key(name: str) -> str:
    """Turn a file system name into an object key, where "" is the bucket root."""
    if name in ("", "/", "."):
        return ""

    return name.lstrip("/")


def is_index_page(name: str) -> bool:
    """Check if a name refers to a directory index page of a static website."""
    return name.endswith("/index.html")


class ObjectFile(StreamFile):
    """File handle that streams the contents of an object from an HTTP response."""

    def __init__(self, key: str, response: requests.Response):
        """Instantiate a file handle for the object downloaded through the response."""
        super().__init__(self._info_from_response(key, response), response.raw, key)

        self._response = response

    @staticmethod
    def _info_from_response(key: str, response: requests.Response) -> FileInfo:
        """Derive the object metadata from the response headers."""
        size = int(response.headers.get("Content-Length", 0))

        mtime_ns = 0
        last_modified = response.headers.get("Last-Modified")

        if last_modified:
            try:
                mtime_ns = int(parsedate_to_datetime(last_modified).timestamp()) * 10**9
            except (TypeError, ValueError):
                pass

        return FileInfo(posixpath.basename(key), size=size, mtime_ns=mtime_ns)

    def close(self) -> None:
        if not self.closed:
            try:
                super().close()
            finally:
                self._response.close()


class Opener(Protocol):
    """Something that opens objects by their download URL."""

    def open(self, url: str, key: str) -> File:
        ...


class HttpOpener:
    """
    Opens objects by downloading them over HTTP.

    If credentials are specified then download URLs are signed, which makes them work
    for private buckets as well. Public buckets ignore the extra query parameters.
    """

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
        expires: int = 3600,
    ):
        """Instantiate an opener with an optional signing key."""
        self._credentials = credentials
        self._session = session or requests.Session()
        self._timeout = timeout
        self._expires = expires

    def open(self, url: str, key: str) -> File:
        if self._credentials is not None:
            url = self._credentials.sign_download_url(
                url, int(time.time()) + self._expires
            )

        # Content-Length must describe the object itself, not a compressed transfer
        response = self._session.get(
            url,
            headers={"Accept-Encoding": "identity"},
            stream=True,
            timeout=self._timeout,
        )

        try:
            raise_for_response(response, key)
        except Exception:
            response.close()
            raise

        return ObjectFile(key, response)


# Hook that decides how a name is opened, e.g. to use a custom session per request
PrepareOpen = Callable[[str], Opener]


class Bucket:
    """
    File system view on a bucket.

    The bucket handle is immutable after construction and can be shared by any number
    of threads.
    """

    def __init__(
        self,
        credentials: Credentials,
        name: str,
        host: str,
        prepare: Optional[PrepareOpen] = None,
        client: Optional[KodoClient] = None,
        page_size: int = constants.DEFAULT_PAGE_SIZE,
        timeout: float = 30,
    ):
        """
        Instantiate a view on the named bucket.

        The host is the domain that serves downloads of the bucket's objects, e.g.
        "https://cdn.example.com".
        """
        self.credentials = credentials
        self.name = name
        self.host = host.rstrip("/")

        if prepare is None:
            opener = HttpOpener(credentials, timeout=timeout)
            prepare = lambda name: opener  # noqa: E731

        self._prepare = prepare
        self._client = client or KodoClient(credentials, timeout=timeout)
        self._lister = Lister(self._client, name, page_size)

    def __repr__(self) -> str:
        return f"Bucket(name={self.name!r}, host={self.host!r})"

    def url(self, key: str) -> str:
        """Return the download URL of an object."""
        return f"{self.host}/{quote(key)}"

    def open(self, name: str) -> File:
        """
        Open a file or directory in the bucket.

        Returns a handle to the object's contents if there is an object with the exact
        name. Otherwise the name is treated as a directory that exists if it has at
        least one child.
        """
        key = object_key(name)

        if key:
            try:
                f = self.open_object(key)
                net_log.debug(f"opened {self.name}:{key}")
                return f
            except FileNotFoundError:
                # A missing index page must not turn into a directory listing
                if is_index_page(name):
                    raise

        entries = self.readdir(key)

        if len(entries) == 0:
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), name)

        dir_name = posixpath.basename(key.rstrip("/")) or "."

        return DirFile(FileInfo.directory(dir_name), entries)

    def open_object(self, key: str) -> File:
        """Open the contents of the object with the specified key."""
        opener = self._prepare(key)
        return opener.open(self.url(key), key)

    def readdir(self, dir: str) -> List[FileInfo]:
        """List the immediate children of a directory."""
        return self._lister.readdir(dir)

    def walk(self, dir: str, visitor: WalkFunction) -> None:
        """Visit every object under a directory, recursively."""
        self._lister.walk(dir, visitor)

    def list(self, prefix: str = "", delimiter: str = "") -> ListIterator:
        """Iterate over all objects with the specified prefix."""
        return self._lister.list(prefix, delimiter)

    def upload(self, name: str, data: BinaryIO, size: int = -1) -> PutResult:
        """
        Store the contents of a stream as the object with the specified name.

        An existing object with the same name is overwritten. Streams that can't seek
        are read into memory first, because every attempt starts from the beginning. If
        a size is specified, a stream with a different length is rejected before
        anything is sent.
        """
        key = object_key(name)

        if not key or key.endswith("/"):
            raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), name)

        if not data.seekable():
            data = io.BytesIO(data.read())

        length = data.seek(0, io.SEEK_END)

        if size >= 0 and length != size:
            raise ValueError(f"expected {size} bytes for {name}, got {length}")

        token = self.credentials.upload_token(self.name, key)
        result = self._client.upload(self.name, key, data, token)

        net_log.debug(f"uploaded {self.name}:{key} ({length} bytes)")

        return result
