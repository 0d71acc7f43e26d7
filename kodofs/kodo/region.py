"""
Module that discovers the service hosts of the region a bucket lives in.

Every bucket lives in a region with its own set of hosts for listing, downloading and
management. These are looked up through the UC service by access key and bucket name.
The answer rarely changes, so it is cached in memory and in a JSON file on disk that is
shared by all processes, with a time to live that the UC service suggests.
"""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, field
import os
import threading
import time
from typing import Callable, Dict, List, Optional

import fasteners
import requests

import kodofs.constants as constants
from kodofs.encoding import Encoding
from kodofs.kodo.hosts import HostProvider, is_retryable, NoHostAvailableError
from kodofs.logger import log, net_log


@dataclass
class Region:
    """Service hosts of a region and the time until which they are valid."""

    rsf: List[str] = field(default_factory=list)
    io: List[str] = field(default_factory=list)
    rs: List[str] = field(default_factory=list)
    api: List[str] = field(default_factory=list)
    up: List[str] = field(default_factory=list)

    expires: float = 0

    @staticmethod
    def from_query(host: Dict, ttl: float) -> Region:
        """Instantiate from an entry in the "hosts" list of a UC query response."""

        def domains(service: str) -> List[str]:
            return list(host.get(service, {}).get("domains", []))

        return Region(
            rsf=domains("rsf"),
            io=domains("io"),
            rs=domains("rs"),
            api=domains("api"),
            up=domains("up"),
            expires=time.time() + host.get("ttl", ttl),
        )

    @property
    def expired(self) -> bool:
        return time.time() >= self.expires


QueryFunction = Callable[[str, str], Region]


class RegionResolver:
    """
    Resolves (access key, bucket) pairs into regions.

    Concurrent lookups of the same pair are coalesced: only the first caller queries the
    UC service and the others wait for its result.
    """

    def __init__(
        self,
        cache_path: Optional[str] = None,
        ttl: float = 86400,
        uc_hosts: Optional[List[str]] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
        freeze_duration: float = 600,
        query: Optional[QueryFunction] = None,
    ):
        """
        Instantiate a resolver.

        The on-disk cache is skipped if no cache path is specified. A custom query
        function replaces the UC service lookup.
        """
        self._cache_path = cache_path
        self._ttl = ttl
        self._uc_hosts = HostProvider(uc_hosts or [constants.DEFAULT_UC_HOST])
        self._session = session or requests.Session()
        self._timeout = timeout
        self._freeze_duration = freeze_duration
        self._query = query or self._query_uc

        self._encoding = Encoding(Region)

        self._lock = threading.Lock()
        self._regions: Dict[str, Region] = {}
        self._in_flight: Dict[str, Future] = {}

    def resolve(self, access_key: str, bucket: str) -> Region:
        """Retrieve the region of a bucket, from cache if possible."""
        key = f"{access_key}:{bucket}"

        with self._lock:
            region = self._regions.get(key)

            if region and not region.expired:
                return region

            future = self._in_flight.get(key)
            owner = future is None

            if owner:
                future = Future()
                self._in_flight[key] = future

        if not owner:
            return future.result()

        try:
            region = self._load_disk_entry(key)

            if region is None:
                region = self._query(access_key, bucket)
                self._save_disk_entry(key, region)

            with self._lock:
                self._regions[key] = region

            future.set_result(region)
        except Exception as e:
            future.set_exception(e)
            raise
        finally:
            with self._lock:
                del self._in_flight[key]

        return region

    def clear(self) -> None:
        """Forget all regions cached in memory."""
        with self._lock:
            self._regions.clear()

    def _query_uc(self, access_key: str, bucket: str) -> Region:
        """Query the UC service for the region of a bucket."""
        last_error: Optional[Exception] = None

        while True:
            try:
                host = self._uc_hosts.provide()
            except NoHostAvailableError:
                if last_error is not None:
                    raise last_error
                raise

            try:
                net_log.debug(f"querying region of {bucket} at {host}")

                response = self._session.get(
                    f"https://{host}/v4/query",
                    params={"ak": access_key, "bucket": bucket},
                    timeout=self._timeout,
                )
                response.raise_for_status()

                hosts = response.json().get("hosts", [])
            except Exception as e:
                if not is_retryable(e):
                    raise

                last_error = e
                log.warning(f"region query at {host} failed: {e}")
                self._uc_hosts.freeze(host, self._freeze_duration)
                continue

            if len(hosts) == 0:
                raise LookupError(f"no region found for bucket {bucket}")

            return Region.from_query(hosts[0], self._ttl)

    @property
    def _cache_lock_path(self) -> str:
        """Return the path to the disk cache lock file."""
        return f"{self._cache_path}.lock"

    def _read_disk_entries(self, path: str) -> Dict[str, Region]:
        """Deserialize regions from the disk cache."""
        with open(path, "r") as f:
            return self._encoding.load_json(f)

    def _load_disk_entry(self, key: str) -> Optional[Region]:
        """Retrieve an unexpired region from the disk cache."""
        if not self._cache_path:
            return None

        try:
            with fasteners.InterProcessLock(self._cache_lock_path):
                region = self._read_disk_entries(self._cache_path).get(key)
        except FileNotFoundError:
            return None
        except Exception as e:
            log.error(f"failed to read region cache {self._cache_path}: {e}")
            return None

        if region is None or region.expired:
            return None

        return region

    def _save_disk_entry(self, key: str, region: Region) -> None:
        """Merge a region into the disk cache, dropping expired entries."""
        if not self._cache_path:
            return

        try:
            os.makedirs(os.path.dirname(self._cache_path) or ".", exist_ok=True)

            with fasteners.InterProcessLock(self._cache_lock_path):
                try:
                    entries = self._read_disk_entries(self._cache_path)
                except (FileNotFoundError, TypeError, ValueError):
                    # Unreadable caches are simply overwritten
                    entries = {}

                entries = {k: r for k, r in entries.items() if not r.expired}
                entries[key] = region

                with open(self._cache_path, "w") as f:
                    self._encoding.dump_json(entries, f)
        except Exception as e:
            # The region is still valid in memory, the disk cache is just a bonus
            log.error(f"failed to write region cache {self._cache_path}: {e}")
