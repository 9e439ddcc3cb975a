"""p4bridge environment configuration.

Environment variables:
    P4API_TIMEOUT: Deadline for every p4 invocation, in milliseconds
        - read from the client environment at call time, see P4.timeout
        - empty/unset/0 = no deadline (default)
        - negative or non-numeric values are ignored

    P4BRIDGE_BIN_PATH: Prefix prepended to the executable name
        - e.g. "/opt/perforce/bin/" runs "/opt/perforce/bin/p4"

    P4BRIDGE_DEBUG: Debug mode
        - true/1/yes = log every formatted result at DEBUG
        - false/0/no = off (default)

    P4BRIDGE_LOG_DEBUG: Log to a temporary file
        - true/1/yes = DEBUG log written under <tempdir>/p4bridge/
        - false/0/no = INFO log on stderr (default)
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config", "parse_timeout_ms"]


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def parse_timeout_ms(value: str | int | float | None) -> float:
    """Parse a millisecond timeout; anything invalid disables the deadline."""
    if value is None or value == "":
        return 0.0
    try:
        timeout = float(value)
    except (TypeError, ValueError):
        return 0.0
    if timeout != timeout or timeout < 0:  # NaN or negative
        return 0.0
    return timeout


@dataclass
class Config:
    """p4bridge configuration.

    Attributes:
        bin_path: Prefix for the p4 executable
        debug: Log formatted results
        log_debug: Log to a temporary file at DEBUG level
        log_file: Log file path (set when log_debug=True)
    """

    bin_path: str = ""
    debug: bool = False
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(bin_path={self.bin_path!r}, "
            f"debug={self.debug}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """Return a timestamped log file path under the system temp directory."""
    log_dir = Path(tempfile.gettempdir()) / "p4bridge"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"p4bridge_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """Load configuration from the environment."""
    log_debug = _parse_bool(os.environ.get("P4BRIDGE_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        bin_path=os.environ.get("P4BRIDGE_BIN_PATH", ""),
        debug=_parse_bool(os.environ.get("P4BRIDGE_DEBUG"), default=False),
        log_debug=log_debug,
        log_file=log_file,
    )


# Global instance, created lazily
_config: Config | None = None


def get_config() -> Config:
    """Return the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload configuration from the environment (used by tests)."""
    global _config
    _config = load_config()
    return _config
