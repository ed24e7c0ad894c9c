"""Durable key-value storage for client-side state."""

import json
import os
from pathlib import Path
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class JsonFileStore:
    """String key-value store persisted as a single JSON object file."""

    def __init__(self, path: Optional[str] = None) -> None:
        """
        Initialize the store.

        Args:
            path: Path of the JSON file. Defaults to ~/.pelucias_cart.json
        """
        if path is None:
            path = str(Path.home() / ".pelucias_cart.json")
        self.path = path

    def _read_all(self) -> dict[str, str]:
        """Read the whole file, raising on I/O or parse errors."""
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object in {self.path}")
        return data

    def get(self, key: str) -> Optional[str]:
        """
        Get the value stored under a key.

        Returns:
            The stored string, or None if the key is missing

        Raises:
            OSError: If the file cannot be read
            ValueError: If the file is not a valid JSON object
        """
        value = self._read_all().get(key)
        if value is None:
            return None
        return str(value)

    def set(self, key: str, value: str) -> bool:
        """
        Store a value under a key.

        Returns:
            True if the value was written, False otherwise
        """
        tmp_path = f"{self.path}.tmp"
        try:
            try:
                data = self._read_all()
            except ValueError as e:
                logger.warning(f"Overwriting unreadable store {self.path}: {e}")
                data = {}
            data[key] = value
            # Previous file stays intact until the new one is complete
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
            return True
        except OSError as e:
            logger.error(f"Could not write {key} to {self.path}: {e}")
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            return False

