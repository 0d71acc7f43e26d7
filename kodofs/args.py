"""Module defining the command-line arguments and providing a parser for them."""

from __future__ import annotations

import argparse
from typing import List, Optional

from kodofs.constants import STUB_FORMAT_VERSION, VERSION


class Arguments(argparse.Namespace):
    """Parsed command-line arguments."""

    command: str

    # url
    bucket: str
    access_key: str
    secret_key: str

    # ls, cat, put
    url: str
    path: str

    # put
    file: str

    hosts: List[List[str]]
    cache: Optional[str]
    offline: bool
    cache_file: bool

    config: str

    debug: bool

    @classmethod
    def parse(cls, args: Optional[List[str]] = None) -> Arguments:
        """
        Parse command-line arguments from the given list of strings.

        Defaults to sys.argv if none are specified.
        """
        return cls._get_parser().parse_args(args, namespace=cls())

    @classmethod
    def _get_parser(cls) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            description="Browse a Qiniu Kodo bucket through a local disk cache.",
            usage="kodofs [option...] command [arg...]",
        )

        parser.add_argument(
            "--version",
            action="version",
            version=f"%(prog)s {VERSION} (stub format {STUB_FORMAT_VERSION})",
            help="show the program version and stub format version",
        )

        # Download hosts of buckets, in addition to the ones in the config file
        parser.add_argument(
            "--host",
            nargs=2,
            metavar=("BUCKET", "HOST"),
            action="append",
            help="download host of a bucket, may be repeated",
            dest="hosts",
            default=[],
        )

        # Path to (optional) config file
        parser.add_argument(
            "--config",
            type=str,
            help="path to config file (default is ~/.kodofs/config)",
            default="~/.kodofs/config",
        )

        # Local cache directory, overrides the config file
        parser.add_argument(
            "--cache", type=str, help="path to local cache directory", default=None
        )

        # Never use the network for file system operations
        parser.add_argument(
            "--offline",
            action="store_true",
            help="only use what is cached locally",
            default=None,
        )

        # Disable caching of file contents
        parser.add_argument(
            "--no-cache-file",
            action="store_false",
            help="disable caching of file contents",
            dest="cache_file",
            default=None,
        )

        # Enable debug output for development
        parser.add_argument(
            "--debug", action="store_true", help="enable debug information"
        )

        commands = parser.add_subparsers(dest="command", metavar="command")
        commands.required = True

        url_parser = commands.add_parser("url", help="create a mount url for a bucket")
        url_parser.add_argument("bucket", type=str, help="name of the bucket")
        url_parser.add_argument("access_key", type=str, help="access key")
        url_parser.add_argument("secret_key", type=str, help="secret key")

        ls_parser = commands.add_parser("ls", help="list a directory in a bucket")
        ls_parser.add_argument("url", type=str, help="mount url of the bucket")
        ls_parser.add_argument(
            "path", type=str, nargs="?", default="/", help="directory to list"
        )

        cat_parser = commands.add_parser("cat", help="print a file in a bucket")
        cat_parser.add_argument("url", type=str, help="mount url of the bucket")
        cat_parser.add_argument("path", type=str, help="file to print")

        put_parser = commands.add_parser(
            "put", help="upload a file to a bucket, bypassing the local cache"
        )
        put_parser.add_argument("url", type=str, help="mount url of the bucket")
        put_parser.add_argument("path", type=str, help="name of the uploaded file")
        put_parser.add_argument(
            "file",
            type=str,
            nargs="?",
            default="-",
            help="local file to upload (default is standard input)",
        )

        return parser
