# src/event_ingest/configs/config.py
import yaml
from pathlib import Path
from functools import lru_cache


class Config:
    """
    Configuration for the event ingestion pipeline.
    """

    # 1. Setup Base Paths
    # This points to src/event_ingest/configs/
    CONFIG_DIR = Path(__file__).parent.resolve()
    # This points to the project root
    PROJECT_ROOT = CONFIG_DIR.parent.parent.parent

    # 2. Define File Paths
    INGESTION_CONFIG_PATH = CONFIG_DIR / "ingestion.yaml"

    @classmethod
    @lru_cache
    def load_ingestion_config(cls) -> dict:
        """Loads the YAML configuration for ingestion sources."""
        return load_yaml_config(cls.INGESTION_CONFIG_PATH)

    @classmethod
    def get_source_config(cls, source_name: str) -> dict | None:
        """Returns the config block of one source, or None if not configured."""
        return cls.load_ingestion_config().get("sources", {}).get(source_name)

    @classmethod
    def get_dedup_config(cls) -> dict:
        """Returns the dedup thresholds block (may be empty)."""
        return cls.load_ingestion_config().get("dedup", {}) or {}


def load_yaml_config(path: str | Path) -> dict:
    """
    Load an ingestion YAML file.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Missing config at {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}
