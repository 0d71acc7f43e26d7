"""
Modules that extend a bucket with a persistent local disk cache.

The network is the primary performance bottleneck of a bucket file system, since every
listing and every download incurs significant latency. Therefore this module mirrors
what is learned about the bucket into a local directory, so that subsequent lookups can
be answered without any network traffic at all.

It's based on the idea that objects in a bucket are written once and rarely change, so
that a listing or a download remains valid for a long time. When a remote directory is
listed, every child is recorded locally: directories become local directories and files
become stubs, symlinks that encode the remote metadata in their target. The next time
the directory is opened it is listed from disk. When a file is read, its contents are
optionally kept as a regular local file so that it can be read again without
downloading it.

The local directory is never locked. Every write is idempotent and atomic per entry, so
concurrent listings of the same directory can only ever race to write the same result.
A directory is marked as fully cached only once all of its children have been stubbed,
and a listing that fails halfway is simply retried from the network next time.

In offline mode only the local directory is consulted. Entries that have only been
stubbed are hidden in that case, because their contents can't be retrieved.
"""

from typing import Optional

from kodofs.bucket import Bucket
from .filesystem import CachedFileSystem
from .remote import NotifyFunction, RemoteAdapter

__all__ = [
    "CachedFileSystem",
    "NotifyFunction",
    "RemoteAdapter",
    "new_fs",
]


def new_fs(
    local: str,
    bucket: Bucket,
    cache_file: bool,
    offline: bool = False,
    notify: Optional[NotifyFunction] = None,
    workers: int = 4,
) -> CachedFileSystem:
    """Create a file system for the bucket that is cached in the local directory."""
    remote = RemoteAdapter(bucket, notify=notify, cache_file=cache_file, workers=workers)
    return CachedFileSystem(local, remote, offline=offline)
