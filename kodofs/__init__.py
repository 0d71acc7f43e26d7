"""
Read-only file system for Qiniu Kodo buckets, with a persistent local disk cache.

A bucket is opened by its mount URL, "kodo:<bucket>?<token>", where the token protects
the access key and secret key of the bucket. The download host of each bucket is looked
up in a registry.Registry, and registry.mount() combines both into a file system that is
cached in a local directory (see kodofs.cached).
"""
