"""Main PlainDoctor build pipeline implementation."""

import os
from pathlib import Path
from typing import Any, Dict, Optional
import structlog

from .config import Config
from .context import BuildContext
from .exceptions import StoreError
from ..ingestion.taxonomy import load_taxonomy
from ..ingestion.provider_ingestion import ProviderIngestionEngine, find_extract_file
from ..aggregation.builder import AggregationBuilder
from ..aggregation.indexes import IndexBuilder
from ..aggregation.stats import StatsBuilder
from ..export.seed_exporter import SeedExporter
from ..export.precomputed_exporter import PrecomputedExporter
from ..store.database import create_build_engine, finalize_store, open_readonly_engine, table_count
from ..store.schema import metadata

logger = structlog.get_logger()

BUILDING_SUFFIX = ".building"


class BuildPipeline:
    """Orchestrates ingest, aggregation, indexing, stats and export."""

    def __init__(self, config: Optional[Config] = None):
        """Initialize the pipeline with configuration."""
        self.config = config or Config()
        self.db_path = Path(self.config.paths.db_path)

    @property
    def building_path(self) -> Path:
        return self.db_path.with_name(self.db_path.name + BUILDING_SUFFIX)

    def resolve_extract_path(self) -> Path:
        paths = self.config.paths
        if paths.extract_file:
            return Path(paths.extract_file)
        return find_extract_file(paths.raw_dir)

    def run_build(self) -> Dict[str, Any]:
        """Build a fresh store and swap it in place of the current one.

        The store is written under a temporary name and only replaces
        ``db_path`` once every stage has finished, so a failed run leaves any
        previous store untouched.
        """
        taxonomy = load_taxonomy(self.config.paths.taxonomy_path, self.config.build.encoding)
        extract_path = self.resolve_extract_path()
        context = BuildContext(taxonomy=taxonomy)

        logger.info(f"Starting build from extract: {extract_path}")
        results = {
            "status": "started",
            "extract_path": str(extract_path),
            "db_path": str(self.db_path),
            "stages": {},
        }

        self._remove_building_files()
        engine = create_build_engine(
            self.building_path,
            journal_mode=self.config.store.journal_mode,
            synchronous=self.config.store.synchronous,
        )
        try:
            metadata.create_all(engine)

            logger.info("Stage 1: Provider ingestion")
            ingestion = ProviderIngestionEngine(self.config, engine, context)
            results["stages"]["ingestion"] = ingestion.ingest_file(extract_path)

            logger.info("Stage 2: Aggregation")
            results["stages"]["aggregation"] = AggregationBuilder(self.config, engine, context).build_all()

            logger.info("Stage 3: Indices")
            results["stages"]["indexes"] = IndexBuilder(engine).build_indexes()

            logger.info("Stage 4: Stats")
            results["stages"]["stats"] = StatsBuilder(engine).build_stats()

            # The WAL must be folded back into the main file before it is moved
            finalize_store(engine, self.building_path)
        except Exception as e:
            engine.dispose()
            self._remove_building_files()
            logger.error(f"Build failed: {e}")
            raise

        try:
            os.replace(self.building_path, self.db_path)
        except OSError as e:
            raise StoreError(f"Cannot replace store at {self.db_path}: {e}") from e

        results["db_size_mb"] = round(self.db_path.stat().st_size / 1024 / 1024, 1)
        results["status"] = "completed"
        logger.info(f"Database: {self.db_path} ({results['db_size_mb']} MB)")
        return results

    def run_export(self, output_dir: Optional[str] = None) -> Dict[str, Any]:
        """Export the finished store as chunked seed files."""
        engine = open_readonly_engine(self.db_path)
        try:
            return SeedExporter(self.config, engine).export_seed(output_dir or self.config.paths.seed_dir)
        finally:
            engine.dispose()

    def run_precompute(self, output_path: Optional[str] = None) -> Dict[str, Any]:
        """Write the precomputed summary artifact."""
        engine = open_readonly_engine(self.db_path)
        try:
            return PrecomputedExporter(engine).export_precomputed(
                output_path or self.config.paths.precomputed_path
            )
        finally:
            engine.dispose()

    def run_all(self) -> Dict[str, Any]:
        """Build, then export seed files and the precomputed summary."""
        results = self.run_build()
        results["stages"]["seed_export"] = self.run_export()
        results["stages"]["precomputed"] = self.run_precompute()
        return results

    def get_status(self) -> Dict[str, Any]:
        """Row counts of the current store."""
        status = {
            "db_path": str(self.db_path),
            "exists": self.db_path.exists(),
            "tables": {},
        }
        if not status["exists"]:
            return status

        engine = open_readonly_engine(self.db_path)
        try:
            for table in metadata.sorted_tables:
                status["tables"][table.name] = table_count(engine, table.name)
        finally:
            engine.dispose()
        return status

    def _remove_building_files(self) -> None:
        for suffix in ("", "-wal", "-shm", "-journal"):
            leftover = Path(str(self.building_path) + suffix)
            if leftover.exists():
                leftover.unlink()
