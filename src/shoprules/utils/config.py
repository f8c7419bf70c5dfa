"""
Configuration utilities for the Shop Rules engine.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv


class Config:
    """Configuration manager for the Shop Rules project.

    Instances are passed explicitly into the tax resolver and the stock
    packager instead of being looked up globally.
    """

    def __init__(self, env_file: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> None:
        """Initialize configuration.

        If an env_file path is provided, load environment variables from it.
        Otherwise, do not auto-load a .env file to keep defaults predictable.
        Overrides win over both.
        """
        self.env_file = env_file
        self._load_environment()
        self._config = self._load_config()
        if overrides:
            self._config.update(overrides)

    def _load_environment(self) -> None:
        """Load environment variables from explicit .env file if provided."""
        if not self.env_file:
            return
        env_path = Path(self.env_file)
        if env_path.exists():
            load_dotenv(env_path)

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        return {
            # Core settings
            "log_level": self._get_str("LOG_LEVEL", default="INFO"),
            # MongoDB settings for the persistence collaborators
            "mongo_url": self._get_str("DB_CONNECTION_URL", default=""),
            "mongo_db": self._get_str("DB_NAME", default="SHOP_RULES"),
            "adjustments_collection": self._get_str("ADJUSTMENTS_COLLECTION", default="adjustments"),
            "items_collection": self._get_str("ITEMS_COLLECTION", default="taxable_items"),
            "shipments_collection": self._get_str("SHIPMENTS_COLLECTION", default="shipments"),
            "inventory_units_collection": self._get_str("INVENTORY_UNITS_COLLECTION", default="inventory_units"),
            "orders_collection": self._get_str("ORDERS_COLLECTION", default="orders"),
            # Store settings
            "currency": self._get_str("CURRENCY", default="USD"),
            "tax_precision": self._get_int("TAX_PRECISION", default=2),
            "show_rate_in_label": self._get_bool("SHOW_RATE_IN_LABEL", default=True),
        }

    def _get_str(self, key: str, default: str = "") -> str:
        """Get string configuration value."""
        if self.env_file is None:
            return default
        return os.getenv(key, default)

    def _get_int(self, key: str, default: int = 0) -> int:
        """Get integer configuration value."""
        if self.env_file is None:
            return default
        try:
            return int(os.getenv(key, str(default)))
        except ValueError:
            return default

    def _get_bool(self, key: str, default: bool = False) -> bool:
        """Get boolean configuration value."""
        if self.env_file is None:
            return default
        value = os.getenv(key, str(default)).lower()
        return value in ("true", "1", "yes", "on")

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return self._config.get(key, default)

    def __getitem__(self, key: str) -> Any:
        """Get configuration value using bracket notation."""
        return self._config[key]

    def __contains__(self, key: str) -> bool:
        """Check if configuration key exists."""
        return key in self._config
