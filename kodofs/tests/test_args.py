import pytest

from kodofs.args import Arguments


def test_no_args():
    with pytest.raises(SystemExit):
        Arguments.parse([])


def test_url():
    args = Arguments.parse(["url", "photos", "ak", "sk"])

    assert args.command == "url"
    assert args.bucket == "photos"
    assert args.access_key == "ak"
    assert args.secret_key == "sk"


def test_url_missing_keys():
    with pytest.raises(SystemExit):
        Arguments.parse(["url", "photos", "ak"])


def test_ls():
    args = Arguments.parse(["ls", "kodo:photos?token", "/a"])

    assert args.command == "ls"
    assert args.url == "kodo:photos?token"
    assert args.path == "/a"


def test_ls_default_path():
    args = Arguments.parse(["ls", "kodo:photos?token"])

    assert args.path == "/"


def test_cat():
    args = Arguments.parse(["cat", "kodo:photos?token", "/a/x.txt"])

    assert args.command == "cat"
    assert args.path == "/a/x.txt"

    with pytest.raises(SystemExit):
        Arguments.parse(["cat", "kodo:photos?token"])


def test_unknown_command():
    with pytest.raises(SystemExit):
        Arguments.parse(["rm", "kodo:photos?token", "/a"])


def test_defaults():
    args = Arguments.parse(["ls", "url"])

    assert args.hosts == []
    assert args.cache is None
    assert args.offline is None
    assert args.cache_file is None
    assert args.config == "~/.kodofs/config"
    assert not args.debug


def test_cache_options():
    args = Arguments.parse(
        ["--cache", "/tmp/c", "--offline", "--no-cache-file", "ls", "url"]
    )

    assert args.cache == "/tmp/c"
    assert args.offline is True
    assert args.cache_file is False


def test_hosts():
    args = Arguments.parse(
        ["--host", "a", "https://a", "--host", "b", "https://b", "ls", "url"]
    )

    assert args.hosts == [["a", "https://a"], ["b", "https://b"]]


def test_put():
    args = Arguments.parse(["put", "kodo:photos?token", "/a/x.txt", "x.txt"])

    assert args.command == "put"
    assert args.url == "kodo:photos?token"
    assert args.path == "/a/x.txt"
    assert args.file == "x.txt"


def test_put_default_stdin():
    args = Arguments.parse(["put", "kodo:photos?token", "/a/x.txt"])

    assert args.file == "-"
