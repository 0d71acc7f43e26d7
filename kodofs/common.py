"""Data structures used by multiple file system components."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
import io
import os
import stat
from typing import BinaryIO, List, Optional

# Extra file mode bit for entries that are known remotely but not (yet) available
# locally, like stubs of remote objects or directories that have not been synced yet.
# It lies above all of the POSIX file type and permission bits.
MODE_REMOTE = 1 << 24

# Mode for entries that are synthesized from a bucket listing
MODE_FILE = stat.S_IFREG | 0o444
MODE_DIR = stat.S_IFDIR | 0o555


@dataclass
class FileInfo:
    """
    Metadata of a file system entry, either local or remote.

    Remote objects only have a name, size and modification time, so the mode is
    synthesized. Directories are never literal objects in a bucket and always have a
    size and modification time of zero when they come from a listing.
    """

    name: str
    size: int = 0
    mtime_ns: int = 0
    mode: int = MODE_FILE

    @staticmethod
    def from_stat(name: str, st: os.stat_result) -> FileInfo:
        """Instantiate from the attributes contained within an os.stat_result object."""
        return FileInfo(
            name=name, size=st.st_size, mtime_ns=st.st_mtime_ns, mode=st.st_mode
        )

    @staticmethod
    def directory(name: str) -> FileInfo:
        """Instantiate the metadata of a synthesized directory."""
        return FileInfo(name=name, mode=MODE_DIR)

    @property
    def is_dir(self) -> bool:
        return stat.S_ISDIR(self.mode)

    @property
    def is_remote(self) -> bool:
        return self.mode & MODE_REMOTE != 0

    @property
    def mtime(self) -> float:
        """Modification time in seconds since the epoch."""
        return self.mtime_ns / 1e9

    def as_remote(self) -> FileInfo:
        """Copy the metadata with the remote bit added to the mode."""
        return dataclasses.replace(self, mode=self.mode | MODE_REMOTE)


class File(io.RawIOBase):
    """
    Handle to an opened file system entry.

    There are two kinds of handles: ones for file contents that support reading, and
    ones for directories that support listing their entries. Both share this interface
    so callers can open a name without knowing upfront what it refers to.
    """

    def __init__(self, info: FileInfo):
        """Instantiate a handle for the entry described by info."""
        super().__init__()

        self._info = info

    @property
    def is_dir(self) -> bool:
        return self._info.is_dir

    def stat(self) -> FileInfo:
        """Return the metadata of the opened entry."""
        return self._info

    def readdir(self, n: int = -1) -> List[FileInfo]:
        """List up to n directory entries, or all remaining ones if n <= 0."""
        raise NotADirectoryError(f"not a directory: {self._info.name}")


class DirFile(File):
    """Directory handle over an already retrieved list of entries."""

    def __init__(self, info: FileInfo, entries: List[FileInfo]):
        """Instantiate a directory handle with its entries."""
        super().__init__(info)

        self._entries = entries
        self._offset = 0

    @property
    def entries(self) -> List[FileInfo]:
        return self._entries

    def readable(self) -> bool:
        return False

    def readinto(self, b) -> Optional[int]:
        raise IsADirectoryError(f"is a directory: {self._info.name}")

    def readdir(self, n: int = -1) -> List[FileInfo]:
        if n <= 0:
            end = len(self._entries)
        else:
            end = min(self._offset + n, len(self._entries))

        entries = self._entries[self._offset : end]
        self._offset = end

        return entries


class StreamFile(File):
    """
    File handle that reads the contents of a file from a stream.

    Only sequential reading is supported unless the underlying stream is seekable,
    which is the case for local files but not for HTTP response bodies.
    """

    def __init__(self, info: FileInfo, stream: BinaryIO, full_name: str = ""):
        """Instantiate a file handle reading from the given stream."""
        super().__init__(info)

        self._stream = stream
        self._position = 0
        self._full_name = full_name or info.name

    @property
    def full_name(self) -> str:
        """Full path or key of the file within its file system."""
        return self._full_name

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return self._stream.seekable()

    def readinto(self, b) -> Optional[int]:
        data = self._stream.read(len(b))
        n = len(data)

        b[:n] = data
        self._position += n

        return n

    def tell(self) -> int:
        return self._position

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if self._stream.seekable():
            self._position = self._stream.seek(offset, whence)
            return self._position

        # Sequential streams can only "seek" to where they already are
        if whence == io.SEEK_SET and offset == self._position:
            return self._position
        elif whence == io.SEEK_CUR and offset == 0:
            return self._position

        raise io.UnsupportedOperation("seek on sequential stream")

    def close(self) -> None:
        if not self.closed:
            try:
                self._stream.close()
            finally:
                super().close()
