import io
import os
import stat

import pytest

from kodofs.common import (
    DirFile,
    File,
    FileInfo,
    MODE_DIR,
    MODE_FILE,
    MODE_REMOTE,
    StreamFile,
)


def test_file_info_from_stat(tmp_path):
    (tmp_path / "file").write_bytes(b"abc")

    st = os.lstat(tmp_path / "file")
    info = FileInfo.from_stat("file", st)

    assert info.name == "file"
    assert info.size == 3
    assert info.mtime_ns == st.st_mtime_ns
    assert not info.is_dir
    assert not info.is_remote


def test_file_info_directory():
    info = FileInfo.directory("dir")

    assert info.is_dir
    assert info.size == 0
    assert info.mtime_ns == 0
    assert info.mode == MODE_DIR


def test_file_info_as_remote():
    info = FileInfo("file", size=3, mtime_ns=2_500_000_000)
    remote = info.as_remote()

    assert remote.is_remote
    assert not info.is_remote
    assert stat.S_ISREG(remote.mode)
    assert remote.mode & ~MODE_REMOTE == MODE_FILE
    assert remote.mtime == 2.5


def test_dir_file_readdir():
    entries = [FileInfo(str(i)) for i in range(5)]

    with DirFile(FileInfo.directory("dir"), entries) as f:
        assert f.is_dir
        assert f.readdir(2) == entries[:2]
        assert f.readdir(2) == entries[2:4]
        assert f.readdir(2) == entries[4:]
        assert f.readdir(2) == []


def test_dir_file_readdir_all():
    entries = [FileInfo(str(i)) for i in range(5)]

    f = DirFile(FileInfo.directory("dir"), entries)
    f.readdir(1)

    assert f.readdir(-1) == entries[1:]
    assert f.readdir(0) == []


def test_dir_file_read():
    f = DirFile(FileInfo.directory("dir"), [])

    with pytest.raises(IsADirectoryError):
        f.read(1)


def test_file_readdir():
    f = StreamFile(FileInfo("file"), io.BytesIO(b""))

    with pytest.raises(NotADirectoryError):
        f.readdir()


def test_stream_file_read():
    with StreamFile(FileInfo("file", size=6), io.BytesIO(b"abcdef"), "a/file") as f:
        assert isinstance(f, File)
        assert not f.is_dir
        assert f.full_name == "a/file"
        assert f.stat().size == 6

        assert f.read(2) == b"ab"
        assert f.tell() == 2
        assert f.read() == b"cdef"
        assert f.read(1) == b""


def test_stream_file_full_name_default():
    f = StreamFile(FileInfo("file"), io.BytesIO(b""))

    assert f.full_name == "file"


def test_stream_file_seekable_stream():
    f = StreamFile(FileInfo("file"), io.BytesIO(b"abcdef"))

    assert f.seekable()
    assert f.seek(4) == 4
    assert f.read() == b"ef"
    assert f.seek(-3, io.SEEK_END) == 3
    assert f.read(1) == b"d"


class _Sequential(io.RawIOBase):
    def __init__(self, data):
        super().__init__()
        self._data = io.BytesIO(data)

    def readable(self):
        return True

    def readinto(self, b):
        return self._data.readinto(b)


def test_stream_file_sequential_stream():
    f = StreamFile(FileInfo("file"), _Sequential(b"abcdef"))

    assert not f.seekable()
    assert f.seek(0) == 0

    f.read(2)

    assert f.seek(2) == 2
    assert f.seek(0, io.SEEK_CUR) == 2

    with pytest.raises(io.UnsupportedOperation):
        f.seek(0)

    with pytest.raises(io.UnsupportedOperation):
        f.seek(1, io.SEEK_CUR)


def test_stream_file_close_closes_stream():
    stream = io.BytesIO(b"abc")

    f = StreamFile(FileInfo("file"), stream)
    f.close()
    f.close()

    assert f.closed
    assert stream.closed
