"""Module for configuration variables with defaults that are overridable by a file."""

from __future__ import annotations

from configparser import ConfigParser, SectionProxy
from dataclasses import dataclass, field
import os
from typing import Dict, Optional

import kodofs.constants as constants
from kodofs.logger import log


@dataclass
class CacheConfig:
    """Configuration variables related to the local disk cache."""

    path: str = os.path.expanduser("~/.kodofs/cache")

    cache_file: bool = True
    offline: bool = False

    workers: int = 4

    @staticmethod
    def load(section: SectionProxy) -> CacheConfig:
        """Load overridden variables from a section within a config file."""
        config = CacheConfig()

        config.path = os.path.expanduser(section.get("path", fallback=config.path))

        config.cache_file = section.getboolean("cache_file", fallback=config.cache_file)
        config.offline = section.getboolean("offline", fallback=config.offline)

        config.workers = section.getint("workers", fallback=config.workers)

        return config


@dataclass
class KodoConfig:
    """Configuration variables related to communication with Kodo."""

    page_size: int = constants.DEFAULT_PAGE_SIZE
    timeout: float = 30
    use_https: bool = True

    uc_host: str = constants.DEFAULT_UC_HOST
    rsf_host: Optional[str] = None
    up_host: Optional[str] = None

    region_ttl: float = 86400
    region_cache: str = os.path.expanduser("~/.kodofs/regions.json")

    retry_max: int = 3
    freeze_duration: float = 600

    @staticmethod
    def load(section: SectionProxy) -> KodoConfig:
        """Load overridden variables from a section within a config file."""
        config = KodoConfig()

        config.page_size = section.getint("page_size", fallback=config.page_size)
        config.timeout = section.getfloat("timeout", fallback=config.timeout)
        config.use_https = section.getboolean("use_https", fallback=config.use_https)

        config.uc_host = section.get("uc_host", fallback=config.uc_host)
        config.rsf_host = section.get("rsf_host", fallback=config.rsf_host) or None
        config.up_host = section.get("up_host", fallback=config.up_host) or None

        config.region_ttl = section.getfloat("region_ttl", fallback=config.region_ttl)
        config.region_cache = os.path.expanduser(
            section.get("region_cache", fallback=config.region_cache)
        )

        config.retry_max = section.getint("retry_max", fallback=config.retry_max)
        config.freeze_duration = section.getfloat(
            "freeze_duration", fallback=config.freeze_duration
        )

        return config


@dataclass
class Config:
    """Configuration variables."""

    cache: CacheConfig = field(default_factory=CacheConfig)
    kodo: KodoConfig = field(default_factory=KodoConfig)

    # Download host of each bucket
    hosts: Dict[str, str] = field(default_factory=dict)

    @staticmethod
    def load(filename: str) -> Config:
        """Load overridden configuration variables from a config file."""
        parser = ConfigParser()
        # Bucket names in [hosts] are case sensitive
        parser.optionxform = str  # type: ignore

        config = Config()

        try:
            with open(filename, "r") as f:
                parser.read_string(f.read(), filename)

            if "cache" in parser:
                config.cache = CacheConfig.load(parser["cache"])

            if "kodo" in parser:
                config.kodo = KodoConfig.load(parser["kodo"])

            if "hosts" in parser:
                config.hosts = dict(parser["hosts"].items())
        except FileNotFoundError:
            log.info(f"no config file at {filename}")
        except Exception as e:
            # An unreadable config file is not considered a fatal error since we can
            # fall back to defaults.
            log.error(f"failed to read config file {filename}: {e}")
        else:
            log.info(f"loaded config: {config}")

        return config
