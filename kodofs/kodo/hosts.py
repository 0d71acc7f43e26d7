"""
Module that implements failover between equivalent service hosts.

Qiniu services are generally reachable through multiple domains. When a request to one
of them fails with an error that is worth retrying, that host is frozen for a while and
the next attempt goes to the next host. Once every host is frozen there is nothing left
to try and the last error is returned to the caller.
"""

import threading
import time
from typing import Dict, Iterable, List, Optional

import requests

# Status codes that won't go away by trying again
NON_RETRYABLE_CODES = (501, 579)

# Status codes used for throttling
THROTTLING_CODES = (571, 573)


class NoHostAvailableError(RuntimeError):
    """Exception raised when every candidate host is frozen."""


class HostProvider:
    """Hands out hosts in order of preference, skipping ones that are frozen."""

    def __init__(self, hosts: Iterable[str]):
        """Instantiate a provider for the given hosts in order of preference."""
        self._hosts: List[str] = list(hosts)

        self._lock = threading.Lock()
        self._frozen_until: Dict[str, float] = {}

        if len(self._hosts) == 0:
            raise ValueError("no hosts specified")

    @property
    def hosts(self) -> List[str]:
        return list(self._hosts)

    def provide(self) -> str:
        """Return the most preferred host that isn't frozen."""
        now = time.monotonic()

        with self._lock:
            for host in self._hosts:
                if self._frozen_until.get(host, 0) <= now:
                    return host

        raise NoHostAvailableError(f"all hosts are frozen: {self._hosts}")

    def freeze(self, host: str, duration: float) -> None:
        """Stop handing out the specified host for the given number of seconds."""
        with self._lock:
            self._frozen_until[host] = time.monotonic() + duration


def status_code(e: Exception) -> Optional[int]:
    """Extract the HTTP status code associated with an error, if any."""
    code = getattr(e, "code", None)

    if isinstance(code, int):
        return code

    response = getattr(e, "response", None)

    if response is not None:
        return response.status_code

    return None


def is_retryable(e: Exception) -> bool:
    """Check if a request that failed with the specified error is worth retrying."""
    if isinstance(e, (requests.ConnectionError, requests.Timeout)):
        return True

    code = status_code(e)

    if code is None:
        return False
    elif code in THROTTLING_CODES:
        return True
    else:
        # Qiniu specific codes from 600 on describe the request, not the host
        return 500 <= code < 600 and code not in NON_RETRYABLE_CODES
