"""
Module that represents remote entries on the local disk without their contents.

When a remote directory is listed, every child is recorded locally so that the next
listing doesn't need the network. Directories simply become local directories. Files
become stubs: symlinks whose target isn't a path but the encoded metadata (name, size,
modification time) of the remote object. The symlink bit is what distinguishes a stub
from a file whose contents have been downloaded.

A directory is only considered to be fully cached once all of its children have been
stubbed, which is signalled by an empty marker file inside of it. If writing any of the
stubs fails then the marker is not written and the directory will be listed remotely
again the next time it is opened.

Writes are idempotent and atomic per entry, so concurrent listings of the same directory
may race to write the same stubs without locking.
"""

import base64
import contextlib
from dataclasses import dataclass
import errno
import os
import stat
from typing import Iterable
import uuid

from semver import VersionInfo

import kodofs.constants as constants
from kodofs.common import FileInfo
from kodofs.encoding import Encoding

# Prefix of temporary entries that are renamed into place once complete
TEMP_PREFIX = ".bktls.tmp."


@dataclass
class Stub:
    """Record stored in the target of a stub symlink."""

    version: str
    info: FileInfo


_encoding = Encoding(Stub)


def encode_stub(info: FileInfo) -> str:
    """
    Encode the metadata of a remote entry into a stub symlink target.

    The encoding is deterministic, so the same metadata always results in the same
    symlink target.
    """
    stub = Stub(version=constants.STUB_FORMAT_VERSION, info=info.as_remote())
    return base64.urlsafe_b64encode(_encoding.pack(stub)).decode()


def decode_stub(target: str) -> FileInfo:
    """Decode the metadata of a remote entry from a stub symlink target."""
    stub = _encoding.unpack(base64.urlsafe_b64decode(target.encode()))

    if not isinstance(stub, Stub) or not isinstance(stub.info, FileInfo):
        raise ValueError(f"not a stub record: {stub}")

    version = VersionInfo.parse(stub.version)
    if version.major != VersionInfo.parse(constants.STUB_FORMAT_VERSION).major:
        raise ValueError(f"incompatible stub version {stub.version}")

    return stub.info.as_remote()


def is_temporary(name: str) -> bool:
    """Check if a directory entry is an incomplete stub or download."""
    return name.startswith(TEMP_PREFIX)


def temporary_path(path: str) -> str:
    """Return a unique path for a temporary entry next to the specified path."""
    dir, name = os.path.split(path)
    return os.path.join(dir, f"{TEMP_PREFIX}{uuid.uuid4().hex}.{name}")


def is_stubbed(info: FileInfo) -> bool:
    """Check if the metadata of a local entry indicates that it is a stub."""
    return stat.S_ISLNK(info.mode)


def _is_materialized(st: os.stat_result, info: FileInfo) -> bool:
    """
    Check if a regular local file holds the contents of the remote object.

    Only whole seconds are compared because the modification time of downloaded files
    is restored from the HTTP Last-Modified header.
    """
    return (
        st.st_size == info.size and st.st_mtime_ns // 10**9 == info.mtime_ns // 10**9
    )


def write_stub(local_path: str, info: FileInfo) -> None:
    """
    Record a remote entry at the local path.

    Directories are created as local directories. Files are written as stub symlinks,
    replacing existing stubs and local copies whose contents are out of date. A local
    copy that matches the remote object is kept as is.
    """
    try:
        st = os.lstat(local_path)
    except FileNotFoundError:
        st = None

    if info.is_dir:
        # An object that has been replaced by a directory of the same name
        if st is not None and stat.S_ISLNK(st.st_mode):
            os.unlink(local_path)

        os.makedirs(local_path, exist_ok=True)
        return

    target = encode_stub(info)

    if st is not None:
        if stat.S_ISLNK(st.st_mode) and os.readlink(local_path) == target:
            return
        elif stat.S_ISREG(st.st_mode) and _is_materialized(st, info):
            return
        elif stat.S_ISDIR(st.st_mode):
            raise IsADirectoryError(
                errno.EISDIR, os.strerror(errno.EISDIR), local_path
            )

    tmp_path = temporary_path(local_path)
    os.symlink(target, tmp_path)

    try:
        os.replace(tmp_path, local_path)
    except OSError:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_path)
        raise


def read_stub(local_path: str, fallback: FileInfo) -> FileInfo:
    """
    Read the metadata of the remote entry recorded at the local path.

    If the local entry isn't a readable stub then the fallback is returned as is.
    """
    try:
        return decode_stub(os.readlink(local_path))
    except Exception:
        return fallback


def marker_path(dir: str) -> str:
    """Return the path to the marker file of a local directory."""
    return os.path.join(dir, constants.DIR_CACHED_MARKER)


def check_cached(dir: str) -> bool:
    """Check if all children of a local directory have been stubbed."""
    return os.path.lexists(marker_path(dir))


def touch_cached(dir: str) -> None:
    """Mark a local directory as having all of its children stubbed."""
    fd = os.open(marker_path(dir), os.O_WRONLY | os.O_CREAT, 0o666)
    os.close(fd)


def prune_stubs(dir: str, names: Iterable[str]) -> int:
    """
    Delete stubs in a local directory that are not among the specified names.

    This drops objects that have been deleted remotely since the directory was last
    listed. Downloaded files and directories are left alone.
    """
    keep = set(names)
    pruned = 0

    with os.scandir(dir) as it:
        for entry in it:
            if entry.name in keep or is_temporary(entry.name):
                continue

            if entry.is_symlink():
                try:
                    os.unlink(entry.path)
                    pruned += 1
                except FileNotFoundError:
                    # Race condition where another listing has already pruned it
                    pass

    return pruned
