"""
Configuration management.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta


@dataclass
class Config:
    """
    Application configuration.

    Loads from environment variables with sensible defaults.
    """

    # Server
    host: str = field(default_factory=lambda: os.getenv("HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    # Data
    data_dir: str = field(default_factory=lambda: os.getenv("DATA_DIR", "./data"))
    storage_root: str = field(default_factory=lambda: os.getenv("STORAGE_ROOT", "./data/objects"))
    records_path: str = field(
        default_factory=lambda: os.getenv("RECORDS_PATH", "./data/records.json")
    )

    # Media staging
    media_bucket: str = field(default_factory=lambda: os.getenv("MEDIA_BUCKET", "horse-media"))
    max_upload_mb: int = field(default_factory=lambda: int(os.getenv("MAX_UPLOAD_MB", "20")))
    orphan_ttl_hours: int = field(
        default_factory=lambda: int(os.getenv("ORPHAN_ASSET_TTL_HOURS", "24"))
    )

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment."""
        return cls()

    @property
    def max_upload_bytes(self) -> int:
        """Maximum accepted upload size in bytes."""
        return self.max_upload_mb * 1024 * 1024

    @property
    def orphan_ttl(self) -> timedelta:
        """Age after which unmigrated provisional assets are reaped."""
        return timedelta(hours=self.orphan_ttl_hours)

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
            "log_level": self.log_level,
            "data_dir": self.data_dir,
            "storage_root": self.storage_root,
            "records_path": self.records_path,
            "media_bucket": self.media_bucket,
            "max_upload_mb": self.max_upload_mb,
            "orphan_ttl_hours": self.orphan_ttl_hours,
        }
