"""
Module that coordinates between the local disk cache and the remote bucket.

It is designed to be used by cached.CachedFileSystem, which decides when to look at the
local disk and when to go to the network. This module implements both sides: answering
lookups from local stubs, and turning remote listings and downloads into local stubs and
files.
"""

from __future__ import annotations

import contextlib
import io
import os
from typing import BinaryIO, Callable, List, Optional

from kodofs.bucket import Bucket
from kodofs.cached.common import ReaderIndex, WorkerPool
from kodofs.cached.stubs import (
    check_cached,
    is_stubbed,
    is_temporary,
    marker_path,
    prune_stubs,
    read_stub,
    temporary_path,
    touch_cached,
    write_stub,
)
import kodofs.constants as constants
from kodofs.common import DirFile, File, FileInfo, MODE_FILE, StreamFile
from kodofs.logger import log, net_log

# Callback invoked with the full name and metadata of a file once its contents have
# been cached locally.
NotifyFunction = Callable[[str, FileInfo], None]


def is_safe_name(name: str) -> bool:
    """Check if a listed name can be represented as an entry in a local directory."""
    return (
        name not in ("", ".", "..")
        and "/" not in name
        and name != constants.DIR_CACHED_MARKER
        and not is_temporary(name)
    )


class CachingFile(File):
    """
    Remote file handle that stores the contents of the file locally when closed.

    Bytes that are read sequentially from the start of the file are copied into a
    temporary spool file next to the local path. If the file was read completely by
    the time it is closed then the spool simply becomes the local copy, otherwise the
    object is downloaded again in full. Only the last reader of a path to close its
    handle stores the contents.
    """

    def __init__(
        self,
        remote_file: StreamFile,
        local_path: str,
        adapter: RemoteAdapter,
        known_info: Optional[FileInfo] = None,
    ):
        """Wrap a remote file handle that will be cached at the local path."""
        super().__init__(remote_file.stat())

        self._remote_file = remote_file
        self._local_path = local_path
        self._adapter = adapter
        self._known_info = known_info

        self._spool: Optional[BinaryIO] = None
        self._spool_path: Optional[str] = None
        self._spooled = 0
        self._spool_valid = True
        self._eof = False

        self._adapter.readers.acquire(local_path)

    @property
    def full_name(self) -> str:
        return self._remote_file.full_name

    @property
    def local_path(self) -> str:
        return self._local_path

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return self._remote_file.seekable()

    def tell(self) -> int:
        return self._remote_file.tell()

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        before = self._remote_file.tell()
        position = self._remote_file.seek(offset, whence)

        if position != before:
            self._spool_valid = False

        return position

    def readinto(self, b) -> Optional[int]:
        n = self._remote_file.readinto(b)

        if n == 0 and len(b) > 0:
            self._eof = True
        elif n:
            self._tee(memoryview(b)[:n])

        return n

    def _tee(self, data: memoryview) -> None:
        """Copy data that was read into the spool file."""
        if not self._spool_valid:
            return

        try:
            if self._spool is None:
                os.makedirs(os.path.dirname(self._local_path), exist_ok=True)

                self._spool_path = temporary_path(self._local_path)
                self._spool = open(self._spool_path, "wb")

            self._spool.write(data)
            self._spooled += len(data)
        except OSError as e:
            log.debug(f"not spooling {self._local_path}: {e}")
            self._spool_valid = False

    @property
    def _complete(self) -> bool:
        """Check if the spool holds the full contents of the file."""
        if not self._spool_valid:
            return False

        size = self._final_info().size

        # A body that ends early is only trusted if the size is unknown
        if size > 0:
            return self._spooled == size

        return self._eof

    def close(self) -> None:
        if self.closed:
            return

        try:
            self._remote_file.close()
        finally:
            try:
                if self._adapter.readers.release(self._local_path):
                    self._persist()
            finally:
                self._discard_spool()
                super().close()

    def _persist(self) -> None:
        """
        Store the contents of the file at the local path.

        Failures are logged and otherwise ignored. The local copy is moved into place
        atomically, so there is never a partially written file at the local path.
        """
        info = self._final_info()

        try:
            if self._complete:
                tmp_path = self._take_spool()
            else:
                tmp_path = self._adapter.download(self.full_name, self._local_path)

            try:
                size = os.path.getsize(tmp_path)

                if info.size > 0 and size != info.size:
                    raise OSError(f"got {size} of {info.size} bytes")

                os.replace(tmp_path, self._local_path)
            except OSError:
                with contextlib.suppress(FileNotFoundError):
                    os.unlink(tmp_path)
                raise

            if info.mtime_ns:
                os.utime(self._local_path, ns=(info.mtime_ns, info.mtime_ns))
        except Exception as e:
            log.warning(f"caching {self.full_name} failed: {e}")
            return

        self._adapter.notify(self.full_name, info)

    def _final_info(self) -> FileInfo:
        """
        Return the metadata of the cached copy.

        The modification time from the listing is preferred over the one from the
        response headers because it is more precise.
        """
        known = self._known_info or self._info

        return FileInfo(
            name=self._info.name,
            size=self._info.size or known.size,
            mtime_ns=known.mtime_ns or self._info.mtime_ns,
            mode=MODE_FILE,
        )

    def _take_spool(self) -> str:
        """Close the spool file and hand over its path to the caller."""
        if self._spool is None or self._spool_path is None:
            # Empty file, nothing was ever written to the spool
            return self._adapter.write_temporary(self._local_path, io.BytesIO())

        self._spool.close()
        tmp_path = self._spool_path

        self._spool = None
        self._spool_path = None

        return tmp_path

    def _discard_spool(self) -> None:
        """Delete the spool file if it hasn't been moved into place."""
        if self._spool is not None:
            self._spool.close()
            self._spool = None

        if self._spool_path is not None:
            try:
                os.unlink(self._spool_path)
            except FileNotFoundError:
                pass

            self._spool_path = None


class RemoteAdapter:
    """
    Local cache logic on top of a bucket.

    Lookups are answered from the local disk where possible. When a remote directory is
    opened, a stub is written for each of its children in the background so that it can
    be listed locally next time. When content caching is enabled, remote files are
    downloaded to the local disk once they have been read and closed.

    Failures to write to the local disk never fail the operation in progress, they only
    mean that the network will be used again next time.
    """

    def __init__(
        self,
        bucket: Bucket,
        notify: Optional[NotifyFunction] = None,
        cache_file: bool = True,
        workers: int = 4,
    ):
        """Instantiate cache logic for the bucket."""
        self._bucket = bucket
        self._notify = notify
        self._cache_file = cache_file

        self._pool = WorkerPool(workers, name="stub-writer")
        self.readers = ReaderIndex()

    @property
    def bucket(self) -> Bucket:
        return self._bucket

    @property
    def cache_file(self) -> bool:
        return self._cache_file

    def join(self) -> None:
        """Wait for all stub writes that have been started to finish."""
        self._pool.join()

    def close(self) -> None:
        """Finish pending stub writes and stop the background workers."""
        self._pool.shutdown()

    #
    # Local lookups
    #

    def lstat(self, local_path: str) -> FileInfo:
        """
        Retrieve the metadata of a local entry.

        Directories that haven't been fully listed yet are reported as remote, and
        stubs are reported with the metadata of the remote object they stand for.
        """
        st = os.lstat(local_path)
        info = FileInfo.from_stat(os.path.basename(local_path), st)

        if info.is_dir:
            if not check_cached(local_path):
                info = info.as_remote()
        elif is_stubbed(info):
            info = read_stub(local_path, info)

        return info

    def readdir_all(self, local_dir: str, offline: bool) -> List[FileInfo]:
        """
        List the entries of a local directory.

        Stubs are resolved into the metadata of the remote objects they stand for, or
        left out in offline mode since their contents can't be retrieved.
        """
        entries = []

        with os.scandir(local_dir) as it:
            for entry in it:
                name = entry.name

                if name == constants.DIR_CACHED_MARKER or is_temporary(name):
                    continue

                try:
                    info = FileInfo.from_stat(name, entry.stat(follow_symlinks=False))
                except FileNotFoundError:
                    continue

                if is_stubbed(info):
                    if offline:
                        continue

                    info = read_stub(entry.path, info)

                entries.append(info)

        entries.sort(key=lambda info: info.name)

        return entries

    #
    # Remote lookups
    #

    def sync_lstat(self, local_root: str, name: str) -> FileInfo:
        """
        Retrieve the metadata of an entry that isn't available locally.

        Metadata is only ever served from the local disk, so this always fails. Entries
        become available locally by opening their parent directory.
        """
        raise FileNotFoundError(name)

    def sync_open(self, local_root: str, name: str) -> File:
        """
        Open an entry in the bucket and cache what is learned about it locally.

        Directories are listed in full. The listing is returned right away while stubs
        for its entries are written in the background. Files are wrapped to be
        downloaded to the local disk when closed, if content caching is enabled.
        """
        if name in ("", "/"):
            name = "."
        else:
            name = name.lstrip("/")

        try:
            f = self._bucket.open(name)
        except FileNotFoundError:
            net_log.debug(f"bucket.open({name}): not found")
            raise
        except Exception as e:
            log.error(f"bucket.open({name}) failed: {e}")
            raise

        net_log.debug(f"==> bucket.open {name}")

        local_path = os.path.normpath(os.path.join(local_root, name))

        if f.is_dir:
            try:
                entries = f.readdir(-1)
            finally:
                f.close()

            net_log.debug(f"==> readdir {name} - {len(entries)} items")

            self._pool.submit(self._write_stubs, local_path, entries)

            return DirFile(f.stat(), entries)

        if not self._cache_file or not isinstance(f, StreamFile):
            return f

        known_info = None

        if os.path.islink(local_path):
            stub_info = read_stub(local_path, FileInfo(""))
            if stub_info.name:
                known_info = stub_info

        return CachingFile(f, local_path, self, known_info)

    def _write_stubs(self, local_dir: str, entries: List[FileInfo]) -> None:
        """
        Write stubs for the entries of a remote directory.

        The directory is only marked as cached if all stubs were written successfully.
        """
        try:
            os.makedirs(local_dir, exist_ok=True)
        except OSError as e:
            log.warning(f"failed to create {local_dir}: {e}")
            return

        error_count = 0
        names = []

        for info in entries:
            if not is_safe_name(info.name):
                log.warning(f"skipping unrepresentable entry {info.name!r}")
                continue

            names.append(info.name)

            try:
                write_stub(os.path.join(local_dir, info.name), info)
            except Exception as e:
                error_count += 1
                log.debug(f"failed to write stub for {info.name}: {e}")

        if error_count > 0:
            log.warning(f"failed to write {error_count} stubs in {local_dir}")

            # A concurrent pass may have marked the directory in the meantime
            try:
                os.unlink(marker_path(local_dir))
            except FileNotFoundError:
                pass
            except OSError as e:
                log.warning(f"failed to unmark {local_dir} as cached: {e}")

            return

        try:
            prune_stubs(local_dir, names)
            touch_cached(local_dir)
        except OSError as e:
            log.warning(f"failed to mark {local_dir} as cached: {e}")

    #
    # Content caching
    #

    def download(self, key: str, local_path: str) -> str:
        """Download an object into a temporary file next to the local path."""
        with self._bucket.open_object(key) as f:
            return self.write_temporary(local_path, f)

    @staticmethod
    def write_temporary(local_path: str, src: BinaryIO) -> str:
        """Write the contents of a stream into a temporary file next to a path."""
        os.makedirs(os.path.dirname(local_path), exist_ok=True)

        tmp_path = temporary_path(local_path)

        try:
            with open(tmp_path, "wb") as dst:
                while True:
                    chunk = src.read(64 * 1024)
                    if not chunk:
                        break
                    dst.write(chunk)
        except Exception:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_path)
            raise

        return tmp_path

    def notify(self, name: str, info: FileInfo) -> None:
        """Inform the observer that a file has been cached."""
        if self._notify is None:
            return

        try:
            self._notify(name, info)
        except Exception as e:
            log.warning(f"notifying about {name} failed: {e}")
