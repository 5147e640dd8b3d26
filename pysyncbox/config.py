"""Configuration management for Syncbox."""

import logging
import os
from pathlib import Path
from typing import Optional

from .utils import DEFAULT_SERVER_URL

logger = logging.getLogger(__name__)

TOKEN_ENV_VAR = "SYNCBOX_API_TOKEN"
SERVER_URL_ENV_VAR = "SYNCBOX_SERVER_URL"

_TOKEN_KEY = "SYNCBOX_API_TOKEN"
_SERVER_URL_KEY = "SYNCBOX_SERVER_URL"


class Config:
    """Reads and writes the Syncbox configuration.

    Values come from ``~/.config/pysyncbox/config`` (``KEY=value`` lines)
    and from environment variables, the environment taking precedence.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_dir: Directory holding the config file. Defaults to
                ~/.config/pysyncbox
        """
        if config_dir is None:
            config_dir = Path.home() / ".config" / "pysyncbox"
        self.config_dir = config_dir
        self.config_file = config_dir / "config"

    def _read_file(self) -> dict[str, str]:
        values: dict[str, str] = {}
        if not self.config_file.exists():
            return values

        try:
            with open(self.config_file, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    key, value = line.split("=", 1)
                    values[key.strip()] = value.strip().strip('"').strip("'")
        except OSError as e:
            logger.warning(f"Failed to read config file {self.config_file}: {e}")
        return values

    def _write_value(self, key: str, value: Optional[str]) -> None:
        values = self._read_file()
        if value is None:
            values.pop(key, None)
        else:
            values[key] = value

        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w", encoding="utf-8") as f:
            for k, v in values.items():
                f.write(f"{k}={v}\n")
        # The file holds a bearer token
        self.config_file.chmod(0o600)
        logger.debug(f"Saved {key} to {self.config_file}")

    @property
    def api_token(self) -> Optional[str]:
        """API token from the environment or the config file."""
        return os.environ.get(TOKEN_ENV_VAR) or self._read_file().get(_TOKEN_KEY)

    @property
    def server_url(self) -> str:
        """Server base URL from the environment or the config file."""
        url = os.environ.get(SERVER_URL_ENV_VAR) or self._read_file().get(
            _SERVER_URL_KEY
        )
        return (url or DEFAULT_SERVER_URL).rstrip("/")

    def save_api_token(self, token: str) -> None:
        self._write_value(_TOKEN_KEY, token)

    def save_server_url(self, url: str) -> None:
        self._write_value(_SERVER_URL_KEY, url.rstrip("/"))

    def get_config_path(self) -> Path:
        return self.config_file

    def is_configured(self) -> bool:
        """Check whether an API token is available."""
        return bool(self.api_token)


config = Config()
