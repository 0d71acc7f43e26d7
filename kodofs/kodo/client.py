"""Module with a minimal client for the Kodo list and form upload APIs."""

from __future__ import annotations

from dataclasses import dataclass, field
import errno
import os
import posixpath
from typing import BinaryIO, Callable, Dict, List, Optional, TypeVar

import requests

import kodofs.constants as constants
from kodofs.kodo.auth import Credentials, QiniuAuth
from kodofs.kodo.hosts import HostProvider, is_retryable, NoHostAvailableError
from kodofs.kodo.region import RegionResolver
from kodofs.logger import log, net_log, summarize

T = TypeVar("T")


class KodoError(Exception):
    """Error response of a Kodo service."""

    def __init__(self, code: int, message: str, reqid: str = ""):
        """Instantiate with the status code, error message and request id."""
        super().__init__(code, message, reqid)

        self.code = code
        self.message = message
        self.reqid = reqid

    def __str__(self) -> str:
        return f"{self.message} (code {self.code}, reqid {self.reqid or '-'})"


def raise_for_response(response: requests.Response, name: str = "") -> None:
    """
    Raise the exception that corresponds to an unsuccessful response.

    Missing entries turn into FileNotFoundError and authorization failures into
    PermissionError, so that they can be handled like their local counterparts.
    """
    if response.status_code < 400:
        return

    try:
        message = response.json().get("error", response.reason)
    except ValueError:
        message = response.reason or ""

    reqid = response.headers.get("X-Reqid", "")

    if response.status_code in (404, constants.CODE_NO_SUCH_ENTRY):
        raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), name)
    elif response.status_code in (401, 403):
        raise PermissionError(errno.EACCES, message, name)
    else:
        raise KodoError(response.status_code, message, reqid)


@dataclass
class ListItem:
    """Object as it is described in a list response."""

    key: str
    fsize: int = 0
    put_time: int = 0
    hash: str = ""
    mime_type: str = ""

    @staticmethod
    def from_json(item: Dict) -> ListItem:
        return ListItem(
            key=item["key"],
            fsize=item.get("fsize", 0),
            put_time=item.get("putTime", 0),
            hash=item.get("hash", ""),
            mime_type=item.get("mimeType", ""),
        )


@dataclass
class ListResult:
    """
    Single page of a list response.

    An empty marker means that there are no further pages.
    """

    items: List[ListItem] = field(default_factory=list)
    common_prefixes: List[str] = field(default_factory=list)
    marker: str = ""

    @property
    def has_next(self) -> bool:
        return self.marker != ""


@dataclass
class PutResult:
    """Response of a successful upload."""

    key: str
    hash: str = ""


class KodoClient:
    """Client for the resource listing (RSF) and form upload services of Kodo."""

    def __init__(
        self,
        credentials: Credentials,
        resolver: Optional[RegionResolver] = None,
        rsf_host: Optional[str] = None,
        up_host: Optional[str] = None,
        session: Optional[requests.Session] = None,
        use_https: bool = True,
        timeout: float = 30,
        retry_max: int = 3,
        freeze_duration: float = 600,
    ):
        """
        Instantiate a client.

        RSF and upload hosts are taken from the region of each bucket, unless fixed
        hosts are specified.
        """
        self.credentials = credentials

        self._resolver = resolver or RegionResolver()
        self._rsf_host = rsf_host
        self._up_host = up_host
        self._session = session or requests.Session()
        self._scheme = "https" if use_https else "http"
        self._timeout = timeout
        self._retry_max = retry_max
        self._freeze_duration = freeze_duration

        self._auth = QiniuAuth(credentials)
        self._providers: Dict[str, HostProvider] = {}

    def list_files(
        self,
        bucket: str,
        prefix: str = "",
        delimiter: str = "",
        limit: int = constants.DEFAULT_PAGE_SIZE,
        marker: str = "",
    ) -> ListResult:
        """List a single page of objects in a bucket."""
        params = {"bucket": bucket, "prefix": prefix, "limit": str(limit)}

        if delimiter:
            params["delimiter"] = delimiter
        if marker:
            params["marker"] = marker

        def call(host: str) -> ListResult:
            response = self._session.post(
                f"{self._endpoint(host)}/list",
                params=params,
                auth=self._auth,
                timeout=self._timeout,
            )
            raise_for_response(response, prefix)

            ret = response.json()

            return ListResult(
                items=[ListItem.from_json(item) for item in ret.get("items") or []],
                common_prefixes=list(ret.get("commonPrefixes") or []),
                marker=ret.get("marker") or "",
            )

        result = self._call_with_failover(self._rsf_provider(bucket), call)

        net_log.debug(
            f"list {bucket}:{prefix} marker={summarize(marker, 32)}"
            f" items={len(result.items)} prefixes={len(result.common_prefixes)}"
            f" has_next={result.has_next}"
        )

        return result

    def upload(self, bucket: str, key: str, data: BinaryIO, token: str) -> PutResult:
        """
        Upload an object in a single multipart form request.

        The data is read from the start for every attempt, so it must be seekable.
        """

        def call(host: str) -> PutResult:
            data.seek(0)

            response = self._session.post(
                self._endpoint(host),
                data={"token": token, "key": key},
                files={"file": (posixpath.basename(key) or "file", data)},
                timeout=self._timeout,
            )
            raise_for_response(response, key)

            ret = response.json()

            return PutResult(key=ret.get("key", key), hash=ret.get("hash", ""))

        result = self._call_with_failover(self._up_provider(bucket), call)

        net_log.debug(f"upload {bucket}:{key} hash={result.hash}")

        return result

    def _endpoint(self, host: str) -> str:
        """Prepend the scheme to a host if it doesn't have one yet."""
        if host.startswith("http://") or host.startswith("https://"):
            return host.rstrip("/")
        else:
            return f"{self._scheme}://{host}"

    def _rsf_provider(self, bucket: str) -> HostProvider:
        """Retrieve the RSF host provider for a bucket."""
        return self._provider("rsf", bucket, self._rsf_host, constants.DEFAULT_RSF_HOST)

    def _up_provider(self, bucket: str) -> HostProvider:
        """Retrieve the upload host provider for a bucket."""
        return self._provider("up", bucket, self._up_host, constants.DEFAULT_UP_HOST)

    def _provider(
        self, service: str, bucket: str, fixed_host: Optional[str], default_host: str
    ) -> HostProvider:
        """Retrieve the provider of hosts of a service in the region of a bucket."""
        key = f"{service}:{bucket}"

        if key not in self._providers:
            if fixed_host:
                hosts = [fixed_host]
            else:
                region = self._resolver.resolve(self.credentials.access_key, bucket)
                hosts = getattr(region, service) or [default_host]

            self._providers[key] = HostProvider(hosts)

        return self._providers[key]

    def _call_with_failover(
        self, provider: HostProvider, call: Callable[[str], T]
    ) -> T:
        """
        Invoke a call against hosts from the provider until it succeeds.

        Each host is tried up to retry_max times before it is frozen and the next one is
        tried. Errors that aren't worth retrying are raised immediately. Once all hosts
        are frozen the last error is raised.
        """
        last_error: Optional[Exception] = None

        while True:
            try:
                host = provider.provide()
            except NoHostAvailableError:
                if last_error is not None:
                    raise last_error
                raise

            for attempt in range(1, self._retry_max + 1):
                try:
                    return call(host)
                except Exception as e:
                    if not is_retryable(e):
                        raise

                    last_error = e
                    log.warning(f"request to {host} failed ({attempt}): {e}")

            provider.freeze(host, self._freeze_duration)
