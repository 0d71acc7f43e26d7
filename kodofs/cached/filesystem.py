"""
Module with a file system that mirrors a bucket into a local directory.

It is designed to be used in conjunction with cached.RemoteAdapter.
"""

from __future__ import annotations

import errno
import os
import posixpath
from typing import List, Tuple

from kodofs.cached.remote import RemoteAdapter
from kodofs.cached.stubs import is_stubbed
from kodofs.common import DirFile, File, FileInfo, StreamFile


def _not_found(name: str) -> FileNotFoundError:
    return FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), name)


class CachedFileSystem:
    """
    Read-only file system for a bucket that is cached in a local directory.

    The local directory mirrors the keys in the bucket. A regular file holds downloaded
    contents, a symlink is a stub for an object that hasn't been downloaded yet, and a
    directory holds a marker file once all of its children have been stubbed.

    Names that can be answered from the local directory never touch the network.
    Everything else is retrieved from the bucket and recorded locally on the way, unless
    the file system is offline, in which case only the local directory is used.
    """

    def __init__(self, local_root: str, remote: RemoteAdapter, offline: bool = False):
        """Instantiate a file system cached in the local root directory."""
        self._local_root = os.path.abspath(local_root)
        self._remote = remote
        self._offline = offline

        os.makedirs(self._local_root, exist_ok=True)

    def __enter__(self) -> CachedFileSystem:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def local_root(self) -> str:
        return self._local_root

    @property
    def offline(self) -> bool:
        return self._offline

    def close(self) -> None:
        """Finish background work of the remote adapter."""
        self._remote.close()

    def _resolve(self, name: str) -> Tuple[str, str]:
        """
        Normalize a name and determine its local path.

        Names are always interpreted relative to the root, so they can't refer to
        anything outside of the local directory.
        """
        normalized = posixpath.normpath("/" + name.replace(os.sep, "/"))
        relative = normalized.lstrip("/")

        if not relative:
            return "/", self._local_root

        return normalized, os.path.join(self._local_root, *relative.split("/"))

    def stat(self, name: str) -> FileInfo:
        """
        Retrieve the metadata of an entry.

        Metadata is only ever served from the local directory. Entries become known
        locally by opening (listing) their parent directory.
        """
        _, local_path = self._resolve(name)

        try:
            return self._remote.lstat(local_path)
        except FileNotFoundError:
            if self._offline:
                raise

        return self._remote.sync_lstat(self._local_root, name)

    def open(self, name: str) -> File:
        """Open a file or directory."""
        name, local_path = self._resolve(name)

        try:
            info = self._remote.lstat(local_path)
        except FileNotFoundError:
            if self._offline:
                raise _not_found(name)

            return self._remote.sync_open(self._local_root, name)

        if info.is_dir:
            if info.is_remote and not self._offline:
                return self._remote.sync_open(self._local_root, name)

            entries = self._remote.readdir_all(local_path, self._offline)

            return DirFile(info, entries)

        if info.is_remote or is_stubbed(info):
            if self._offline:
                raise _not_found(name)

            return self._remote.sync_open(self._local_root, name)

        return StreamFile(info, open(local_path, "rb"), name)

    def readdir(self, name: str) -> List[FileInfo]:
        """List all entries of a directory."""
        with self.open(name) as f:
            return f.readdir(-1)
