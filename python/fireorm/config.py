"""Connection configuration."""

from __future__ import annotations

import configparser
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_DATABASE = "(default)"
DEFAULT_UPDATE_BATCH_SIZE = 100


@dataclass
class FireOrmConfig:
    """Settings for connecting to Firestore.

    Example fireorm.ini:
        [fireorm]
        project = my-project
        database = (default)
        emulator_host = localhost:8080
        update_batch_size = 200
    """

    project: str | None = None
    """Google Cloud project id. None lets the client infer it."""

    database: str = DEFAULT_DATABASE
    """Firestore database id."""

    emulator_host: str | None = None
    """host:port of a Firestore emulator to use instead of the real service."""

    credentials_file: Path | None = None
    """Service account JSON key. None uses application default credentials."""

    update_batch_size: int = DEFAULT_UPDATE_BATCH_SIZE
    """Documents per page in bulk updates."""

    extra: dict[str, Any] = field(default_factory=dict)
    """Additional configuration options."""

    def __post_init__(self) -> None:
        if self.update_batch_size <= 0:
            raise ValueError(f"update_batch_size must be positive, got {self.update_batch_size}")

    @classmethod
    def from_ini(cls, path: Path | str, section: str = "fireorm") -> FireOrmConfig:
        """Load configuration from an ini file.

        Args:
            path: Path to the ini file
            section: Section holding the settings

        Returns:
            Parsed FireOrmConfig

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If the section is missing or a value is invalid
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        parser = configparser.ConfigParser()
        parser.read(path)

        if section not in parser:
            raise ValueError(f"No [{section}] section in {path}")

        values = dict(parser[section])
        credentials = values.get("credentials_file")
        if credentials and not Path(credentials).is_absolute():
            values["credentials_file"] = str(path.parent / credentials)
        return cls._from_mapping(values)

    @classmethod
    def from_env(cls, prefix: str = "FIREORM_", environ: Mapping[str, str] | None = None) -> FireOrmConfig:
        """Load configuration from environment variables.

        Recognised variables (with the default prefix): FIREORM_PROJECT,
        FIREORM_DATABASE, FIREORM_EMULATOR_HOST, FIREORM_CREDENTIALS_FILE and
        FIREORM_UPDATE_BATCH_SIZE.
        """
        environ = os.environ if environ is None else environ
        values = {
            key[len(prefix):].lower(): value
            for key, value in environ.items()
            if key.startswith(prefix)
        }
        return cls._from_mapping(values)

    @classmethod
    def _from_mapping(cls, values: Mapping[str, str]) -> FireOrmConfig:
        known_keys = {"project", "database", "emulator_host", "credentials_file", "update_batch_size"}

        batch_size = values.get("update_batch_size")
        try:
            update_batch_size = int(batch_size) if batch_size else DEFAULT_UPDATE_BATCH_SIZE
        except ValueError:
            raise ValueError(f"update_batch_size must be an integer, got {batch_size!r}") from None

        credentials = values.get("credentials_file")
        return cls(
            project=values.get("project") or None,
            database=values.get("database") or DEFAULT_DATABASE,
            emulator_host=values.get("emulator_host") or None,
            credentials_file=Path(credentials) if credentials else None,
            update_batch_size=update_batch_size,
            extra={k: v for k, v in values.items() if k not in known_keys},
        )
