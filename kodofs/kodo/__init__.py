"""
Modules that talk to Kodo, the object storage service of Qiniu.

Only the parts that are needed to present a bucket as a file system are implemented:
listing objects (with pagination and delimiter grouping), uploading single objects,
signing requests, failing over between equivalent service hosts, and discovering which
hosts serve the region of a bucket.
"""

from .auth import Credentials, QiniuAuth
from .client import KodoClient, KodoError, PutResult
from .listing import ListIterator, ListObject, ListPage, Lister
from .region import Region, RegionResolver

__all__ = [
    "Credentials",
    "QiniuAuth",
    "KodoClient",
    "KodoError",
    "PutResult",
    "ListIterator",
    "ListObject",
    "ListPage",
    "Lister",
    "Region",
    "RegionResolver",
]
