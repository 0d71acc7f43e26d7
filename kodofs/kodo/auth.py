"""Module that implements request signing with a Qiniu access key and secret key."""

import base64
import hashlib
import hmac
import json
import time
from typing import Mapping, Optional
from urllib.parse import urlsplit

import requests

CONTENT_TYPE_FORM = "application/x-www-form-urlencoded"
CONTENT_TYPE_JSON = "application/json"

AUTHORIZATION_PREFIX_QINIU = "Qiniu "


class Credentials:
    """Access key and secret key pair that signs requests to Qiniu services."""

    def __init__(self, access_key: str, secret_key: str):
        """Instantiate credentials from an access key and secret key."""
        self.access_key = access_key
        self.secret_key = secret_key.encode()

    def __repr__(self) -> str:
        return f"Credentials(access_key={self.access_key!r})"

    def sign(self, data: bytes) -> str:
        """Sign data with the secret key, e.g. for private download URLs."""
        digest = hmac.new(self.secret_key, data, hashlib.sha1).digest()
        return f"{self.access_key}:{base64.urlsafe_b64encode(digest).decode()}"

    def sign_with_data(self, data: bytes) -> str:
        """Sign data and append it, e.g. for upload tokens."""
        encoded_data = base64.urlsafe_b64encode(data).decode()
        return f"{self.sign(encoded_data.encode())}:{encoded_data}"

    def sign_request_v2(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Optional[bytes] = None,
    ) -> str:
        """
        Sign a management request with the "Qiniu" token scheme.

        The signed data consists of the method, path and query, the host, the content
        type, all X-Qiniu-* headers in sorted order and, for form and JSON requests,
        the body.
        """
        parts = urlsplit(url)

        data = f"{method} {parts.path or '/'}"
        if parts.query:
            data += f"?{parts.query}"

        data += f"\nHost: {parts.netloc}\n"

        content_type = headers.get("Content-Type") or CONTENT_TYPE_FORM
        data += f"Content-Type: {content_type}\n"

        qiniu_headers = sorted(
            (name.title(), value)
            for name, value in headers.items()
            if name.lower().startswith("x-qiniu-") and len(name) > len("x-qiniu-")
        )

        for name, value in qiniu_headers:
            data += f"{name}: {value}\n"

        data += "\n"

        signed = data.encode()

        if body and content_type in (CONTENT_TYPE_FORM, CONTENT_TYPE_JSON):
            signed += body

        return self.sign(signed)

    def sign_download_url(self, url: str, deadline: int) -> str:
        """Turn a download URL into one that is valid for a private bucket."""
        separator = "&" if "?" in url else "?"
        url = f"{url}{separator}e={deadline}"

        return f"{url}&token={self.sign(url.encode())}"

    def upload_token(self, bucket: str, key: str, expires: int = 3600) -> str:
        """
        Create a token that allows uploading the specified key to a bucket.

        The put policy scopes the token to a single key, so an existing object with that
        key is overwritten. The token stops being valid after the given number of
        seconds.
        """
        policy = {"scope": f"{bucket}:{key}", "deadline": int(time.time()) + expires}

        return self.sign_with_data(json.dumps(policy, separators=(",", ":")).encode())


class QiniuAuth(requests.auth.AuthBase):
    """Attaches a "Qiniu" authorization header to a requests call."""

    def __init__(self, credentials: Credentials):
        """Instantiate with the credentials to sign with."""
        self._credentials = credentials

    def __call__(self, r: requests.PreparedRequest) -> requests.PreparedRequest:
        if "Content-Type" not in r.headers:
            r.headers["Content-Type"] = CONTENT_TYPE_FORM

        body = r.body.encode() if isinstance(r.body, str) else r.body

        token = self._credentials.sign_request_v2(
            r.method or "GET", r.url or "", r.headers, body
        )
        r.headers["Authorization"] = AUTHORIZATION_PREFIX_QINIU + token

        return r
