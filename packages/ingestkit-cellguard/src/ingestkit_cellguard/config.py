"""Configuration model for the ingestkit-cellguard pipeline.

Provides ``CellGuardConfig`` with all tunable parameters and sensible
defaults.  Overrides can come from constructor kwargs, a YAML/JSON file
(``from_file()``), or environment variables (``from_env()``).
"""

from __future__ import annotations

import json
import os
import pathlib
from typing import Mapping

from pydantic import BaseModel

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

# env var -> config field
_ENV_FIELDS: dict[str, str] = {
    "MAX_CELL_LENGTH": "max_cell_length",
    "ALLOW_DIACRITICS": "allow_diacritics",
    "CELLGUARD_BATCH_SIZE": "batch_size",
    "CELLGUARD_STREAMING_THRESHOLD_MB": "streaming_threshold_mb",
    "CELLGUARD_MAX_FILE_SIZE_MB": "max_file_size_mb",
    "CELLGUARD_LEARNING_DB": "learning_db_path",
    "CELLGUARD_SESSION_RETENTION_HOURS": "session_retention_hours",
}


class CellGuardConfig(BaseModel):
    """All tunable parameters with sensible defaults."""

    # --- Cell constraints ---
    max_cell_length: int = 1_000_000
    allow_diacritics: bool = True

    # --- Scanning ---
    batch_size: int = 1000
    streaming_threshold_mb: float = 10.0
    progress_rows_hint: int = 10_000
    stream_queue_size: int = 4
    max_listed_invalid_chars: int = 3

    # --- Upload limits ---
    max_file_size_mb: int = 800
    allowed_extensions: list[str] = [".csv", ".xlsx", ".xlsm"]

    # --- Sessions ---
    session_retention_hours: float = 24.0

    # --- Learning ---
    enable_learning: bool = True
    learning_db_path: str = ":memory:"
    exact_match_min_frequency: int = 2
    pattern_min_count: int = 2
    fingerprint_prefix_length: int = 10
    max_fix_variants: int = 3

    # --- Logging / PII safety ---
    log_sample_data: bool = False

    @classmethod
    def from_file(cls, path: str) -> CellGuardConfig:
        """Load configuration from a YAML or JSON file.

        File format is detected by extension: ``.yaml`` / ``.yml`` for YAML,
        ``.json`` for JSON.  Keys not present retain their defaults.

        Raises:
            FileNotFoundError: If *path* does not exist.
            ValueError: If the file extension is not recognized.
        """
        file_path = pathlib.Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        suffix = file_path.suffix.lower()

        if suffix in (".yaml", ".yml"):
            import yaml

            with open(file_path) as fh:
                data = yaml.safe_load(fh)
        elif suffix == ".json":
            with open(file_path) as fh:
                data = json.load(fh)
        else:
            raise ValueError(
                f"Unsupported config file extension '{suffix}'. "
                "Use .yaml, .yml, or .json."
            )

        if data is None:
            data = {}

        return cls(**data)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: object,
    ) -> CellGuardConfig:
        """Build a config from environment-style variables.

        Recognizes ``MAX_CELL_LENGTH`` and ``ALLOW_DIACRITICS`` plus the
        ``CELLGUARD_*`` variables in ``_ENV_FIELDS``.  Explicit *overrides*
        win over the environment.

        Raises:
            ValueError: If a boolean variable holds an unrecognized value.
        """
        env = os.environ if environ is None else environ
        data: dict[str, object] = {}
        for var, field in _ENV_FIELDS.items():
            raw = env.get(var)
            if raw is None or raw.strip() == "":
                continue
            if field == "allow_diacritics":
                data[field] = _parse_bool(var, raw)
            else:
                data[field] = raw.strip()
        data.update(overrides)
        return cls(**data)


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got '{raw}'")
