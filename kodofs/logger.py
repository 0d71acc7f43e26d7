"""Module containing utilities for logging, along with a standard logger."""

import logging
from typing import Any, Optional

# Debug flags for set_debug()
DEBUG_NETWORK = 1 << 0
DEBUG_ALL = DEBUG_NETWORK


def _get_logger(name: Optional[str] = "kodofs") -> logging.Logger:
    stderrOutput = logging.StreamHandler()

    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    stderrOutput.setFormatter(formatter)

    logger = logging.getLogger(name)
    logger.addHandler(stderrOutput)

    return logger


def summarize(obj: Any, max_length: int = 255) -> str:
    """Return a stringified representation of the object up to the given length."""
    stringified_obj = str(obj)

    if len(stringified_obj) <= max_length:
        return stringified_obj
    else:
        return stringified_obj[: max_length - 3] + "..."


def set_debug(flags: int) -> None:
    """
    Enable debug output for the specified areas.

    Network tracing (every list call, object fetch and host failover) is logged through
    a child logger so that it can be switched on without the rest of the debug output.
    """
    if flags & DEBUG_NETWORK:
        net_log.setLevel(logging.DEBUG)
    else:
        net_log.setLevel(logging.NOTSET)


# Default logger
log = _get_logger()

# Logger for request level tracing
net_log = log.getChild("net")
