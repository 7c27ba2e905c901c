"""Configuration management for the PlainDoctor build pipeline."""

import os
import yaml
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field
import structlog

logger = structlog.get_logger()


class PathsConfig(BaseModel):
    """Input and output locations."""
    raw_dir: str = Field(default="data/raw")
    taxonomy_file: str = Field(default="nucc_taxonomy.csv")
    extract_file: Optional[str] = None
    db_path: str = Field(default="data/plaindoctor.db")
    seed_dir: str = Field(default="data/seed")
    precomputed_path: str = Field(default="data/precomputed.json")

    @property
    def taxonomy_path(self) -> Path:
        """Taxonomy file, resolved against the raw directory when relative."""
        path = Path(self.taxonomy_file)
        return path if path.is_absolute() else Path(self.raw_dir) / path


class BuildConfig(BaseModel):
    """Ingestion and aggregation settings."""
    batch_size: int = Field(default=5000)
    city_min_providers: int = Field(default=10)
    progress_every: int = Field(default=100_000)
    encoding: str = Field(default="utf-8")


class StoreConfig(BaseModel):
    """SQLite pragmas applied while the store is being built."""
    journal_mode: str = Field(default="WAL")
    synchronous: str = Field(default="OFF")


class ExportConfig(BaseModel):
    """Seed export settings."""
    chunk_size: int = Field(default=1000)
    provider_chunk_size: int = Field(default=1000)
    include_stats: bool = Field(default=True)


class Config(BaseModel):
    """Main configuration class for the PlainDoctor build."""

    paths: PathsConfig = Field(default_factory=PathsConfig)
    build: BuildConfig = Field(default_factory=BuildConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)

    @classmethod
    def from_yaml(cls, config_path: str) -> "Config":
        """Load configuration from YAML file."""
        config_file = Path(config_path)
        if not config_file.exists():
            logger.warning(f"Config file not found: {config_path}, using defaults")
            return cls()

        try:
            with open(config_file, 'r') as f:
                config_data = yaml.safe_load(f) or {}
            return cls(**config_data)
        except Exception as e:
            logger.error(f"Error loading config from {config_path}: {e}")
            return cls()

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        config_data = {}

        env_mappings = {
            "PLAINDOCTOR_RAW_DIR": ("paths", "raw_dir"),
            "PLAINDOCTOR_TAXONOMY_FILE": ("paths", "taxonomy_file"),
            "PLAINDOCTOR_EXTRACT_FILE": ("paths", "extract_file"),
            "PLAINDOCTOR_DB_PATH": ("paths", "db_path"),
            "PLAINDOCTOR_SEED_DIR": ("paths", "seed_dir"),
            "PLAINDOCTOR_PRECOMPUTED_PATH": ("paths", "precomputed_path"),
            "PLAINDOCTOR_BATCH_SIZE": ("build", "batch_size"),
            "PLAINDOCTOR_CITY_MIN_PROVIDERS": ("build", "city_min_providers"),
            "PLAINDOCTOR_CHUNK_SIZE": ("export", "chunk_size"),
            "PLAINDOCTOR_PROVIDER_CHUNK_SIZE": ("export", "provider_chunk_size"),
        }

        for env_var, (section, key) in env_mappings.items():
            value = os.getenv(env_var)
            if value:
                if section not in config_data:
                    config_data[section] = {}
                # Convert to appropriate type
                if key in ["batch_size", "city_min_providers", "chunk_size", "provider_chunk_size"]:
                    value = int(value)
                config_data[section][key] = value

        return cls(**config_data)

    def to_yaml(self, output_path: str) -> None:
        """Save configuration to YAML file."""
        config_dict = self.model_dump()
        with open(output_path, 'w') as f:
            yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)
        logger.info(f"Configuration saved to {output_path}")


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration with fallback strategy."""
    if config_path and Path(config_path).exists():
        return Config.from_yaml(config_path)

    # Try default config locations
    default_paths = [
        "config/plaindoctor.yaml",
        "plaindoctor.yaml",
        "/etc/plaindoctor/config.yaml"
    ]

    for path in default_paths:
        if Path(path).exists():
            return Config.from_yaml(path)

    # Fall back to environment variables
    logger.info("No config file found, loading from environment variables")
    return Config.from_env()
