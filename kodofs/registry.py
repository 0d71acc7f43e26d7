"""
Module for opening buckets by their mount URL.

A mount URL only names the bucket and carries its keys. The host that serves downloads
of the bucket's objects is looked up in a registry, which is usually filled from the
[hosts] section of the config file.
"""

from __future__ import annotations

import threading
from typing import Dict, Iterable, Optional, Tuple

from kodofs.bucket import Bucket
from kodofs.cached import CachedFileSystem, NotifyFunction, new_fs
from kodofs.config import CacheConfig, KodoConfig
from kodofs.kodo import Credentials, KodoClient, RegionResolver
import kodofs.url as url_codec


class BucketNotRegisteredError(LookupError):
    """Raised when the download host of a bucket is unknown."""

    def __init__(self, bucket: str):
        """Instantiate the error for the named bucket."""
        super().__init__(
            f"host of bucket '{bucket}' not found, please register it first"
        )

        self.bucket = bucket


class Registry:
    """Thread-safe mapping of bucket names to download hosts."""

    def __init__(self, hosts: Optional[Dict[str, str]] = None):
        """Instantiate a registry, optionally with initial bucket/host pairs."""
        self._lock = threading.Lock()
        self._hosts: Dict[str, str] = dict(hosts or {})

    def register(self, *bucket_host_pairs: str) -> None:
        """
        Register the download hosts of buckets.

        Arguments alternate between bucket name and host, e.g.
        register("photos", "https://img.example.com", "docs", "https://doc.example.com").
        Registering a bucket again replaces its host.
        """
        if len(bucket_host_pairs) % 2 != 0:
            raise ValueError("expected (bucket, host) pairs")

        with self._lock:
            for i in range(0, len(bucket_host_pairs), 2):
                bucket, host = bucket_host_pairs[i], bucket_host_pairs[i + 1]
                self._hosts[bucket] = host

    def lookup(self, bucket: str) -> str:
        """Return the download host of a bucket."""
        with self._lock:
            try:
                return self._hosts[bucket]
            except KeyError:
                raise BucketNotRegisteredError(bucket)

    def clear(self) -> None:
        """Forget all registered buckets."""
        with self._lock:
            self._hosts.clear()

    def items(self) -> Iterable[Tuple[str, str]]:
        with self._lock:
            return list(self._hosts.items())


def new_bucket(
    credentials: Credentials, name: str, host: str, config: Optional[KodoConfig] = None
) -> Bucket:
    """Create a bucket handle that talks to Kodo as configured."""
    if config is None:
        config = KodoConfig()

    resolver = RegionResolver(
        cache_path=config.region_cache,
        ttl=config.region_ttl,
        uc_hosts=[config.uc_host],
        timeout=config.timeout,
        freeze_duration=config.freeze_duration,
    )

    client = KodoClient(
        credentials,
        resolver=resolver,
        rsf_host=config.rsf_host,
        up_host=config.up_host,
        use_https=config.use_https,
        timeout=config.timeout,
        retry_max=config.retry_max,
        freeze_duration=config.freeze_duration,
    )

    return Bucket(
        credentials,
        name,
        host,
        client=client,
        page_size=config.page_size,
        timeout=config.timeout,
    )


def open_url(
    url: str, registry: Registry, config: Optional[KodoConfig] = None
) -> Bucket:
    """Open the bucket named by a mount URL of the form "kodo:<bucket>?<token>"."""
    bucket, access_key, secret_key = url_codec.parse(url)
    host = registry.lookup(bucket)

    return new_bucket(Credentials(access_key, secret_key), bucket, host, config)


def mount(
    url: str,
    local: str,
    registry: Registry,
    cache: Optional[CacheConfig] = None,
    kodo: Optional[KodoConfig] = None,
    notify: Optional[NotifyFunction] = None,
) -> CachedFileSystem:
    """Open the bucket named by a mount URL as a file system cached in local."""
    if cache is None:
        cache = CacheConfig()

    bucket = open_url(url, registry, kodo)

    return new_fs(
        local,
        bucket,
        cache.cache_file,
        offline=cache.offline,
        notify=notify,
        workers=cache.workers,
    )
