"""
Module implementing the command-line interface of kodofs.

The command-line interface is a thin layer on top of the cached file system. It can
create mount URLs for buckets, and list directories and print files of a bucket through
the local disk cache, so that repeated invocations are served without network access.
Files are uploaded directly to the bucket without updating the local disk cache.
"""

import dataclasses
import logging
import os
import shutil
import signal
import sys
from typing import List, NoReturn, Optional

from kodofs.args import Arguments
from kodofs.bucket import Bucket
from kodofs.cached import CachedFileSystem
from kodofs.config import Config
import kodofs.constants as constants
from kodofs.logger import DEBUG_ALL, log, set_debug
from kodofs.registry import mount, open_url, Registry
import kodofs.url as url_codec


def main(arguments: Optional[List[str]] = None) -> NoReturn:
    """
    Run a kodofs command with the given arguments.

    Defaults to parsing command-line arguments from sys.argv if none are specified.
    """
    # Parse command-line arguments.
    args = Arguments.parse(arguments)

    # Configure debug logging.
    if args.debug:
        log.setLevel(logging.DEBUG)
        set_debug(DEBUG_ALL)
    else:
        log.setLevel(logging.ERROR)
        set_debug(0)

    try:
        exit_code = _run(args)
    except KeyboardInterrupt:
        exit_code = 128 + signal.SIGINT
    except Exception as e:
        log.error(f"failed to run command: {e}")
        exit_code = constants.KODOFS_ERROR_CODE

    sys.exit(exit_code)


def _run(args: Arguments) -> int:
    if args.command == "url":
        print(url_codec.make_url(args.bucket, args.access_key, args.secret_key))
        return 0

    config = _load_config(args)

    registry = Registry(config.hosts)
    for bucket, host in args.hosts:
        registry.register(bucket, host)

    if args.command == "put":
        _put(open_url(args.url, registry, config.kodo), args.path, args.file)
        return 0

    with mount(args.url, config.cache.path, registry, config.cache, config.kodo) as fs:
        if args.command == "ls":
            _list(fs, args.path)
        elif args.command == "cat":
            _cat(fs, args.path)
        else:
            raise ValueError(f"unknown command {args.command}")

    return 0


def _load_config(args: Arguments) -> Config:
    """Load the config file and apply overrides from the command-line."""
    config = Config.load(os.path.expanduser(args.config))

    cache = config.cache

    if args.cache is not None:
        cache = dataclasses.replace(cache, path=os.path.expanduser(args.cache))
    if args.offline is not None:
        cache = dataclasses.replace(cache, offline=args.offline)
    if args.cache_file is not None:
        cache = dataclasses.replace(cache, cache_file=args.cache_file)

    return dataclasses.replace(config, cache=cache)


def _list(fs: CachedFileSystem, path: str) -> None:
    for info in fs.readdir(path):
        print(info.name + ("/" if info.is_dir else ""))


def _cat(fs: CachedFileSystem, path: str) -> None:
    with fs.open(path) as f:
        shutil.copyfileobj(f, sys.stdout.buffer)

    sys.stdout.buffer.flush()


def _put(bucket: Bucket, path: str, file: str) -> None:
    if file == "-":
        bucket.upload(path, sys.stdin.buffer)
        return

    with open(file, "rb") as f:
        bucket.upload(path, f, os.fstat(f.fileno()).st_size)


if __name__ == "__main__":
    main()
