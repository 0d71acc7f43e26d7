import io
import logging
from unittest import mock

import pytest

import kodofs.constants as constants
from kodofs.__main__ import main
from kodofs.cached import new_fs
from kodofs.logger import log
import kodofs.url as url_codec


@pytest.fixture
def mount_bucket(tmp_path, bucket):
    """Replace mounting by URL with a file system over the fake bucket."""

    def fake_mount(url, local, registry, cache, kodo):
        return new_fs(str(tmp_path / "cache"), bucket, cache.cache_file, cache.offline)

    with mock.patch("kodofs.__main__.mount", side_effect=fake_mount) as m:
        yield m


def _main(args):
    with pytest.raises(SystemExit) as e:
        main(["--config", "/nonexistent/config"] + args)

    return e.value.code


def test_no_args():
    with pytest.raises(SystemExit):
        main([])


def test_url(capsys):
    assert _main(["url", "photos", "ak", "sk"]) == 0

    url = capsys.readouterr().out.strip()

    assert url_codec.parse(url) == ("photos", "ak", "sk")


def test_debug_flag_set(mount_bucket):
    _main(["--debug", "ls", "url"])

    assert log.getEffectiveLevel() == logging.DEBUG


def test_debug_flag_not_set(mount_bucket):
    _main(["ls", "url"])

    assert log.getEffectiveLevel() == logging.ERROR


def test_ls(mount_bucket, capsys):
    assert _main(["ls", "url", "/"]) == 0

    assert capsys.readouterr().out.splitlines() == ["a/", "b.txt", "docs/"]


def test_ls_subdirectory(mount_bucket, capsys):
    assert _main(["ls", "url", "/a"]) == 0

    assert capsys.readouterr().out.splitlines() == ["x.txt", "y/"]


def test_cat(mount_bucket, capsysbinary):
    assert _main(["cat", "url", "/a/x.txt"]) == 0

    assert capsysbinary.readouterr().out == b"hello"


def test_cat_missing(mount_bucket, caplog):
    assert _main(["cat", "url", "/nothing"]) == constants.KODOFS_ERROR_CODE

    assert "failed to run command" in caplog.text


def test_cache_overrides(mount_bucket, tmp_path):
    _main(
        ["--cache", str(tmp_path / "c"), "--offline", "--no-cache-file", "ls", "url"]
    )

    cache = mount_bucket.call_args[0][3]

    assert cache.path == str(tmp_path / "c")
    assert cache.offline
    assert not cache.cache_file
    assert mount_bucket.call_args[0][1] == str(tmp_path / "c")


def test_hosts_registered(mount_bucket):
    _main(["--host", "photos", "https://img.example.com", "ls", "url"])

    registry = mount_bucket.call_args[0][2]

    assert registry.lookup("photos") == "https://img.example.com"


def test_config_file(mount_bucket, tmp_path):
    (tmp_path / "config").write_text("[hosts]\nphotos = https://img\n")

    with pytest.raises(SystemExit):
        main(["--config", str(tmp_path / "config"), "ls", "url"])

    registry = mount_bucket.call_args[0][2]

    assert registry.lookup("photos") == "https://img"


def test_command_failure(caplog):
    with mock.patch("kodofs.__main__.mount") as mock_mount:
        mock_mount.side_effect = Exception("foo")

        assert _main(["ls", "url"]) == constants.KODOFS_ERROR_CODE

    assert "failed to run command: foo" in caplog.text


def test_keyboard_interrupt():
    with mock.patch("kodofs.__main__.mount") as mock_mount:
        mock_mount.side_effect = KeyboardInterrupt()

        assert _main(["ls", "url"]) == 130


def test_put(tmp_path, mount_bucket):
    (tmp_path / "x.txt").write_bytes(b"hello")

    with mock.patch("kodofs.__main__.open_url") as mock_open_url:
        assert _main(["put", "url", "/a/x.txt", str(tmp_path / "x.txt")]) == 0

    name, _, size = mock_open_url.return_value.upload.call_args[0]

    assert name == "/a/x.txt"
    assert size == 5
    assert not mount_bucket.called


def test_put_stdin(monkeypatch):
    monkeypatch.setattr("sys.stdin", io.TextIOWrapper(io.BytesIO(b"data")))

    with mock.patch("kodofs.__main__.open_url") as mock_open_url:
        assert _main(["put", "url", "/b.txt"]) == 0

    name, data = mock_open_url.return_value.upload.call_args[0]

    assert name == "/b.txt"
    assert data.read() == b"data"


def test_put_failure(tmp_path, caplog):
    with mock.patch("kodofs.__main__.open_url"):
        code = _main(["put", "url", "/a.txt", str(tmp_path / "missing")])

    assert code == constants.KODOFS_ERROR_CODE
    assert "failed to run command" in caplog.text
