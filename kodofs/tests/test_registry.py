from unittest import mock

import pytest

from kodofs.bucket import Bucket
from kodofs.cached import CachedFileSystem
from kodofs.config import CacheConfig, KodoConfig
from kodofs.registry import (
    BucketNotRegisteredError,
    mount,
    new_bucket,
    open_url,
    Registry,
)
from kodofs.kodo.auth import Credentials
import kodofs.url as url_codec


@pytest.fixture
def kodo_config(tmp_path):
    return KodoConfig(region_cache=str(tmp_path / "regions.json"))


def test_register_lookup():
    registry = Registry()
    registry.register("a", "https://a.example.com", "b", "https://b.example.com")

    assert registry.lookup("a") == "https://a.example.com"
    assert registry.lookup("b") == "https://b.example.com"


def test_register_replaces():
    registry = Registry({"a": "old"})
    registry.register("a", "new")

    assert registry.lookup("a") == "new"
    assert list(registry.items()) == [("a", "new")]


def test_register_odd_arguments():
    with pytest.raises(ValueError):
        Registry().register("a", "host", "b")


def test_lookup_unregistered():
    with pytest.raises(BucketNotRegisteredError) as e:
        Registry().lookup("a")

    assert isinstance(e.value, LookupError)
    assert e.value.bucket == "a"


def test_clear():
    registry = Registry({"a": "host"})
    registry.clear()

    with pytest.raises(BucketNotRegisteredError):
        registry.lookup("a")


def test_registries_are_independent():
    one = Registry()
    two = Registry()

    one.register("a", "host")

    with pytest.raises(BucketNotRegisteredError):
        two.lookup("a")


def test_new_bucket(kodo_config):
    bucket = new_bucket(Credentials("ak", "sk"), "photos", "https://img/", kodo_config)

    assert isinstance(bucket, Bucket)
    assert bucket.name == "photos"
    assert bucket.host == "https://img"


def test_new_bucket_fixed_hosts(kodo_config):
    kodo_config.rsf_host = "rsf.internal"
    kodo_config.up_host = "up.internal"

    bucket = new_bucket(Credentials("ak", "sk"), "photos", "https://img", kodo_config)

    assert bucket._client._rsf_host == "rsf.internal"
    assert bucket._client._up_host == "up.internal"


def test_open_url(kodo_config):
    registry = Registry({"photos": "https://img.example.com"})
    url = url_codec.make_url("photos", "ak", "sk")

    bucket = open_url(url, registry, kodo_config)

    assert bucket.name == "photos"
    assert bucket.host == "https://img.example.com"
    assert bucket.credentials.access_key == "ak"


def test_open_url_unregistered(kodo_config):
    url = url_codec.make_url("photos", "ak", "sk")

    with pytest.raises(BucketNotRegisteredError):
        open_url(url, Registry(), kodo_config)


def test_open_url_bad_token():
    with pytest.raises(PermissionError):
        open_url("kodo:photos", Registry({"photos": "host"}))


def test_mount(tmp_path, kodo_config):
    registry = Registry({"photos": "https://img.example.com"})
    url = url_codec.make_url("photos", "ak", "sk")

    cache = CacheConfig(path=str(tmp_path / "cache"), offline=True, workers=1)

    with mount(url, cache.path, registry, cache, kodo_config) as fs:
        assert isinstance(fs, CachedFileSystem)
        assert fs.offline
        assert (tmp_path / "cache").is_dir()


def test_mount_passes_notify(tmp_path, kodo_config):
    registry = Registry({"photos": "https://img.example.com"})
    url = url_codec.make_url("photos", "ak", "sk")
    notify = mock.Mock()

    with mock.patch("kodofs.registry.new_fs") as new_fs:
        mount(url, str(tmp_path), registry, kodo=kodo_config, notify=notify)

    args, kwargs = new_fs.call_args
    assert args[0] == str(tmp_path)
    assert args[1].name == "photos"
    assert args[2] is True
    assert kwargs["notify"] is notify
    assert not kwargs["offline"]
