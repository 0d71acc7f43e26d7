"""
Module for mount URLs of the form "kodo:<bucket>?<token>".

The token holds the access key and secret key of the bucket. It is protected so that
the keys can't be read from the URL, or modified, without knowing the protection key.
That key is derived from a salt and the value of an (optional) environment variable,
which means that URLs created on one machine can only be used on machines that share
the same secret.

The token is a compact JWE with direct AES-256-GCM encryption of the URL-encoded
parameters.
"""

import errno
import hashlib
import os
from typing import Dict, Optional, Tuple
from urllib.parse import parse_qs, urlencode

from jose import jwe
from jose.constants import ALGORITHMS
from jose.exceptions import JOSEError

import kodofs.constants as constants

# Salt that is mixed into the protection key
KEY_SALT = "kodofs/url-token"

# Environment variable that holds the secret part of the protection key
ENV_KEY_NAME = "KODOFS_URL_KEY"


def _permission_error(message: str) -> PermissionError:
    return PermissionError(errno.EACCES, message)


def _protection_key(key: Optional[str] = None) -> bytes:
    """Derive the 256-bit protection key from the salt and the environment."""
    if key is None:
        key = os.environ.get(ENV_KEY_NAME, "")

    return hashlib.sha256(f"{KEY_SALT}:{key}".encode()).digest()


def encode_token(params: Dict[str, str], key: Optional[str] = None) -> str:
    """Protect a set of parameters as a token."""
    plain = urlencode(sorted(params.items())).encode()

    token = jwe.encrypt(
        plain,
        _protection_key(key),
        algorithm=ALGORITHMS.DIR,
        encryption=ALGORITHMS.A256GCM,
    )

    return token.decode()


def decode_token(token: str, key: Optional[str] = None) -> Dict[str, str]:
    """Recover the parameters from a token, raising PermissionError if it's invalid."""
    try:
        plain = jwe.decrypt(token, _protection_key(key))
    except (JOSEError, KeyError, ValueError):
        raise _permission_error("token is malformed or was not issued with this key")

    if plain is None:
        raise _permission_error("token is malformed or was not issued with this key")

    try:
        query = parse_qs(plain.decode(), keep_blank_values=True, strict_parsing=True)
    except ValueError:
        raise _permission_error("malformed token")

    return {name: values[0] for name, values in query.items()}


def make_url(
    bucket: str, access_key: str, secret_key: str, key: Optional[str] = None
) -> str:
    """Create a mount URL for a bucket."""
    token = encode_token({"ak": access_key, "sk": secret_key}, key)
    return f"{constants.SCHEME}:{bucket}?{token}"


def parse(url: str, key: Optional[str] = None) -> Tuple[str, str, str]:
    """
    Parse a mount URL into the bucket name, access key and secret key.

    Raises PermissionError if the URL carries no valid token or the token lacks keys.
    """
    prefix = f"{constants.SCHEME}:"
    if url.startswith(prefix):
        url = url[len(prefix) :]

    bucket, sep, token = url.partition("?")
    if not sep:
        raise _permission_error("url has no token")

    params = decode_token(token, key)

    access_key = params.get("ak", "")
    secret_key = params.get("sk", "")

    if not access_key or not secret_key:
        raise _permission_error("token lacks access key or secret key")

    return bucket, access_key, secret_key
