"""Configuration management for pydrivesync.

Settings are resolved from environment variables first, then from the
``KEY=value`` config file in ``~/.config/pydrivesync/config``.
"""

import hashlib
import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://www.googleapis.com/drive/v3"
DEFAULT_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3"

ENV_ACCESS_TOKEN = "PYDRIVESYNC_ACCESS_TOKEN"
ENV_API_URL = "PYDRIVESYNC_API_URL"
ENV_UPLOAD_URL = "PYDRIVESYNC_UPLOAD_URL"
ENV_INDEX_PATH = "PYDRIVESYNC_INDEX_PATH"


class Config:
    """Configuration manager for pydrivesync."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_dir: Directory holding the config file, OAuth files and
                sync indexes. Defaults to ~/.config/pydrivesync
        """
        if config_dir is None:
            config_dir = Path.home() / ".config" / "pydrivesync"
        self.config_dir = config_dir
        self.config_file = config_dir / "config"
        self._values: dict[str, str] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load ``KEY=value`` pairs from the config file if it exists."""
        if not self.config_file.exists():
            return

        try:
            with open(self.config_file, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    key, value = line.split("=", 1)
                    self._values[key.strip()] = value.strip().strip('"').strip("'")
        except OSError as e:
            logger.warning(f"Could not read config file {self.config_file}: {e}")

    def _get(self, key: str) -> Optional[str]:
        return os.environ.get(key) or self._values.get(key)

    @property
    def access_token(self) -> Optional[str]:
        """Ready-to-use OAuth access token, if one is configured."""
        return self._get(ENV_ACCESS_TOKEN)

    @property
    def api_url(self) -> str:
        return self._get(ENV_API_URL) or DEFAULT_API_URL

    @property
    def upload_url(self) -> str:
        return self._get(ENV_UPLOAD_URL) or DEFAULT_UPLOAD_URL

    @property
    def client_secret_path(self) -> Path:
        return self.config_dir / "client_secret.json"

    @property
    def token_path(self) -> Path:
        return self.config_dir / "token.json"

    @property
    def index_dir(self) -> Path:
        return self.config_dir / "index"

    def get_index_path(self, local_root: Path, remote_folder_id: str) -> Path:
        """Get the sync index database path for a sync pair.

        One database is kept per (local root, remote folder) pair, keyed by
        a hash of both, so indexes of different pairs never collide.

        Args:
            local_root: Local sync root
            remote_folder_id: Remote folder identifier

        Returns:
            Path to the SQLite database file
        """
        override = self._get(ENV_INDEX_PATH)
        if override:
            return Path(override).expanduser()

        combined = f"{local_root.resolve()}:{remote_folder_id}"
        key = hashlib.sha256(combined.encode()).hexdigest()[:16]
        return self.index_dir / f"{key}.db"


config = Config()
