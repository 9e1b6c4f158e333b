"""File-backed persistence of the transport's credential blob."""

import json
import os
from pathlib import Path
from typing import Protocol

from ..logging_config import get_logger

logger = get_logger(__name__)


class ICredentialStore(Protocol):
    """Opaque credential material keyed by a local profile."""

    def load(self) -> dict | None:
        """Saved credentials, or None if there are none."""
        ...

    def save(self, credentials: dict) -> None:
        """Persist credentials, replacing any previous blob."""
        ...

    def clear(self) -> None:
        """Delete persisted credentials."""
        ...


class FileCredentialStore:
    """Stores credentials as ``<auth_dir>/<profile>.json``."""

    def __init__(self, auth_dir: str | Path, profile: str = "default"):
        self._auth_dir = Path(auth_dir)
        self._profile = profile

    @property
    def path(self) -> Path:
        return self._auth_dir / f"{self._profile}.json"

    def ensure_dir(self) -> None:
        """Create the auth directory. Raises OSError if it cannot be created."""
        if not self._auth_dir.exists():
            self._auth_dir.mkdir(parents=True, exist_ok=True)
            logger.info("Created session directory %s", self._auth_dir)

    def load(self) -> dict | None:
        self.ensure_dir()
        if not self.path.exists():
            return None
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def save(self, credentials: dict) -> None:
        self.ensure_dir()
        tmp_path = self.path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(credentials, f)
        os.replace(tmp_path, self.path)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.info("Deleted session credentials for profile %s", self._profile)
