"""
Module that turns the flat, paginated list API of a bucket into directory listings.

A bucket is a flat namespace of keys. Listing it with a prefix and a delimiter groups
all keys that share the prefix up to the next delimiter into a single "common prefix",
which is what makes it possible to present the keys as a directory tree. Results are
returned in pages that are linked by an opaque marker, in lexicographic order of the
raw keys, also across page boundaries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Set

import kodofs.constants as constants
from kodofs.common import FileInfo
from kodofs.kodo.client import KodoClient, ListResult
from kodofs.logger import net_log

# Callback invoked for every entry of a walk. Returning False stops the walk.
WalkFunction = Callable[[str, Optional[FileInfo], Optional[Exception]], Optional[bool]]


def from_put_time(put_time: int) -> int:
    """Convert a Kodo put time (in units of 100ns) into nanoseconds."""
    return put_time * 100


def dir_prefix(dir: str) -> str:
    """Turn a directory name into the key prefix of its children."""
    if dir in ("", "/", "."):
        return ""

    dir = dir.lstrip("/")

    if not dir.endswith("/"):
        dir += "/"

    return dir


@dataclass
class ListObject:
    """
    A single object (or directory) returned by a listing.

    Directories are synthesized from common prefixes. Their key has the trailing
    delimiter removed and all fields other than the key are zero.
    """

    key: str
    mtime_ns: int = 0
    size: int = 0
    is_dir: bool = False


@dataclass
class ListPage:
    """Page of objects sorted by key, with the token to retrieve the next page."""

    objects: List[ListObject] = field(default_factory=list)
    next_page_token: str = ""
    is_last_page: bool = True


class ListIterator:
    """
    Iterator over all objects matching a prefix and delimiter.

    Pages are retrieved lazily as the previous one is exhausted. The iterator can only
    be consumed once, a new one must be created to start over.
    """

    def __init__(self, lister: Lister, prefix: str, delimiter: str, page_size: int):
        """Instantiate an iterator that hasn't retrieved any page yet."""
        self._lister = lister
        self._prefix = prefix
        self._delimiter = delimiter
        self._page_size = page_size

        self._page: Optional[ListPage] = None
        self._next_index = 0
        self._seen_dirs: Set[str] = set()

    def __iter__(self) -> Iterator[ListObject]:
        return self

    def __next__(self) -> ListObject:
        while True:
            if self._page is not None:
                if self._next_index < len(self._page.objects):
                    obj = self._page.objects[self._next_index]
                    self._next_index += 1

                    # The same common prefix may be reported again on a later page
                    if obj.is_dir:
                        if obj.key in self._seen_dirs:
                            continue

                        self._seen_dirs.add(obj.key)

                    return obj

                if self._page.is_last_page:
                    raise StopIteration

                page_token = self._page.next_page_token
            else:
                page_token = ""

            self._page = self._lister.list_page(
                self._prefix, self._delimiter, self._page_size, page_token
            )
            self._next_index = 0


class Lister:
    """Listing operations on a single bucket."""

    def __init__(
        self,
        client: KodoClient,
        bucket: str,
        page_size: int = constants.DEFAULT_PAGE_SIZE,
    ):
        """Instantiate a lister for the bucket through the specified client."""
        self._client = client
        self._bucket = bucket
        self._page_size = page_size

    @property
    def bucket(self) -> str:
        return self._bucket

    def list_page(
        self, prefix: str, delimiter: str, page_size: int, page_token: str
    ) -> ListPage:
        """
        Retrieve a single page of objects.

        Objects and common prefixes are merged into a single list in order of their raw
        keys. A page size of zero or less means that the default page size is used.
        """
        if page_size <= 0:
            page_size = constants.DEFAULT_PAGE_SIZE

        result: ListResult = self._client.list_files(
            self._bucket, prefix, delimiter, page_size, page_token
        )

        entries = [
            (item.key, ListObject(item.key, from_put_time(item.put_time), item.fsize))
            for item in result.items
        ]

        for common_prefix in result.common_prefixes:
            key = common_prefix
            if delimiter and key.endswith(delimiter) and key != delimiter:
                key = key[: -len(delimiter)]

            entries.append((common_prefix, ListObject(key, is_dir=True)))

        entries.sort(key=lambda entry: entry[0])

        return ListPage(
            objects=[obj for _, obj in entries],
            next_page_token=result.marker,
            is_last_page=not result.has_next,
        )

    def list(self, prefix: str = "", delimiter: str = "") -> ListIterator:
        """
        Iterate over all objects with the specified prefix.

        With an empty delimiter the bucket is treated as a flat namespace and every key
        is returned. Otherwise keys with the delimiter after the prefix are grouped into
        a single directory entry. Recently written objects may be missing because the
        listing is only eventually consistent.
        """
        return ListIterator(self, prefix, delimiter, self._page_size)

    def readdir(self, dir: str) -> List[FileInfo]:
        """List the immediate children of a directory."""
        prefix = dir_prefix(dir)

        entries = []

        for obj in self.list(prefix, "/"):
            name = obj.key[len(prefix) :]

            if obj.is_dir:
                entries.append(FileInfo.directory(name))
            else:
                entries.append(FileInfo(name, size=obj.size, mtime_ns=obj.mtime_ns))

        net_log.debug(f"readdir {self._bucket}:/{prefix} - {len(entries)} items")

        return entries

    def walk(self, dir: str, visitor: WalkFunction) -> None:
        """
        Visit every object under a directory, recursively, in order of their keys.

        The visitor is called with the full path ("/" + key), the metadata of the
        object (named relative to dir) and None. It may return False to stop the walk.
        If the listing fails then the visitor is called with the directory, no metadata
        and the error, after which the error is raised.
        """
        prefix = dir_prefix(dir)
        objects = self.list(prefix, "")

        while True:
            try:
                obj = next(objects)
            except StopIteration:
                return
            except Exception as e:
                visitor("/" + prefix, None, e)
                raise

            name = obj.key[len(prefix) :]
            info = FileInfo(name, size=obj.size, mtime_ns=obj.mtime_ns)

            if visitor("/" + obj.key, info, None) is False:
                return
