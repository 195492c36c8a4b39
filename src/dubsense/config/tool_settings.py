"""Environment-driven settings for dubsense.

Settings are read once from environment variables:
    DUBSENSE_HOME       State directory for logs (default: ~/.dubsense)
    DUBSENSE_DUB        dub executable name or path (default: dub)
    DUBSENSE_LOG_LEVEL  Server log level name (default: INFO)
    DC                  Preferred D compiler, as dub itself honours it
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_DUB_BINARY = "dub"
DEFAULT_LOG_LEVEL = "INFO"


@dataclass(frozen=True)
class ToolSettings:
    """Resolved tool settings.

    Attributes:
        home_dir: Directory holding logs and other server state
        dub_binary: dub executable used for describe and build calls
        log_level: Log level name for the server
        preferred_compiler: Compiler from $DC, if set
    """

    home_dir: Path
    dub_binary: str = DEFAULT_DUB_BINARY
    log_level: str = DEFAULT_LOG_LEVEL
    preferred_compiler: Optional[str] = None

    @property
    def log_dir(self) -> Path:
        return self.home_dir / "logs"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ToolSettings":
        """Build settings from environment variables.

        Args:
            environ: Mapping to read instead of os.environ

        Returns:
            ToolSettings instance
        """
        env = os.environ if environ is None else environ

        home = env.get("DUBSENSE_HOME")
        home_dir = Path(home) if home else Path.home() / ".dubsense"

        return cls(
            home_dir=home_dir,
            dub_binary=env.get("DUBSENSE_DUB") or DEFAULT_DUB_BINARY,
            log_level=(env.get("DUBSENSE_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
            preferred_compiler=env.get("DC") or None,
        )
