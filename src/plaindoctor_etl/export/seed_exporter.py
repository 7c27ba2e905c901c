"""Chunked SQL seed export of a finished provider store."""

import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence
import structlog
from sqlalchemy import Engine, text

from ..store.database import read_frame
from ..store.schema import index_statements

logger = structlog.get_logger()

# (table, ORDER BY, file prefix); loaded whole, then sliced into chunks
SMALL_TABLES = [
    ("specialties", "provider_count DESC, code", "01_specialties"),
    ("states", "name COLLATE NOCASE, abbr", "02_states"),
    ("cities", "provider_count DESC, id", "03_cities"),
    ("specialty_state", "provider_count DESC, specialty_code, state", "04_specialty_state"),
]
STATS_TABLE = ("_stats", "key", "06_stats")

PROVIDER_TABLE = "providers"
PROVIDER_PREFIX = "05_providers"
INDEX_FILE = "99_indices.sql"

CURSOR_COLUMN = "_cursor_rowid"

# Names this exporter writes; nothing else in the output directory is touched
SEED_FILE_PATTERN = re.compile(r"^\d{2}_\w+_\d{4,5}\.sql$")


def escape_sql(value: Any) -> str:
    """SQL literal for ``value``: quotes doubled, None as NULL."""
    if value is None:
        return "NULL"
    return "'" + str(value).replace("'", "''") + "'"


def render_chunk(table_name: str, columns: Sequence[str], rows: Iterable[Sequence[Any]],
                 create_sql: Optional[str] = None) -> str:
    """One self-contained load script: optional preamble plus a bulk INSERT.

    With no rows only the preamble is rendered.
    """
    sql = ""
    if create_sql:
        sql += f"DROP TABLE IF EXISTS {table_name};\n"
        sql += create_sql + ";\n\n"

    values = ",\n".join(
        "(" + ",".join(escape_sql(value) for value in row) + ")" for row in rows
    )
    if values:
        sql += f"INSERT INTO {table_name} ({','.join(columns)}) VALUES\n{values};\n"
    return sql


class SeedExporter:
    """Writes ordered, numbered seed files that replay into an empty store."""

    def __init__(self, config, engine: Engine):
        """Initialize the seed exporter over a read-only engine."""
        self.config = config
        self.engine = engine
        self.chunk_size = config.export.chunk_size
        self.provider_chunk_size = config.export.provider_chunk_size
        self.range_queries = 0

    def export_seed(self, output_dir: str) -> Dict[str, Any]:
        """Export every table, then the index file, into ``output_dir``."""
        logger.info(f"Exporting seed files to {output_dir}")

        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)
        removed = self.clear_seed_files(output_path)
        if removed:
            logger.info(f"Removed {removed} previous seed files")

        result = {
            "output_directory": str(output_path),
            "total_files": 0,
            "tables": {},
        }

        tables = list(SMALL_TABLES)
        if self.config.export.include_stats:
            tables.append(STATS_TABLE)

        for table_name, order_by, prefix in tables:
            table_result = self.export_small_table(output_path, table_name, order_by, prefix)
            result["tables"][table_name] = table_result
            result["total_files"] += table_result["files"]

        provider_result = self.export_large_table(output_path, PROVIDER_TABLE, PROVIDER_PREFIX)
        result["tables"][PROVIDER_TABLE] = provider_result
        result["total_files"] += provider_result["files"]

        (output_path / INDEX_FILE).write_text(";\n".join(index_statements()) + ";\n", encoding="utf-8")
        result["total_files"] += 1

        logger.info(f"Total: {result['total_files']} seed files in {output_path}")
        return result

    @staticmethod
    def clear_seed_files(output_path: Path) -> int:
        """Delete seed files left by an earlier export; other files are kept."""
        removed = 0
        for path in output_path.iterdir():
            if path.is_file() and (path.name == INDEX_FILE or SEED_FILE_PATTERN.match(path.name)):
                path.unlink()
                removed += 1
        return removed

    def _create_sql(self, table_name: str) -> Optional[str]:
        with self.engine.connect() as conn:
            return conn.execute(
                text("SELECT sql FROM sqlite_master WHERE type = 'table' AND name = :name"),
                {"name": table_name},
            ).scalar_one_or_none()

    def export_small_table(self, output_path: Path, table_name: str, order_by: str,
                           prefix: str) -> Dict[str, Any]:
        """Load the whole table once and slice it into chunks."""
        frame = read_frame(self.engine, f"SELECT * FROM {table_name} ORDER BY {order_by}")
        columns = list(frame.columns)
        create_sql = self._create_sql(table_name)
        if frame.empty:
            # The table must still exist on replay for the index file
            (output_path / f"{prefix}_0001.sql").write_text(
                render_chunk(table_name, columns, [], create_sql), encoding="utf-8"
            )
            logger.info(f"  {table_name}: 0 rows -> schema only")
            return {"rows": 0, "files": 1}

        rows = list(frame.itertuples(index=False, name=None))

        file_num = 0
        for start in range(0, len(rows), self.chunk_size):
            file_num += 1
            chunk = rows[start:start + self.chunk_size]
            sql = render_chunk(table_name, columns, chunk, create_sql if start == 0 else None)
            (output_path / f"{prefix}_{file_num:04d}.sql").write_text(sql, encoding="utf-8")

        logger.info(f"  {table_name}: {len(rows):,} rows -> {file_num} files")
        return {"rows": len(rows), "files": file_num}

    def export_large_table(self, output_path: Path, table_name: str, prefix: str) -> Dict[str, Any]:
        """Stream the table in rowid order, one range query per chunk.

        The cursor after each chunk is the rowid of the last row written, so
        rowid gaps left by ignored duplicate inserts are skipped naturally
        and every query costs the same regardless of how far in it starts.
        """
        with self.engine.connect() as conn:
            columns = list(conn.execute(text(f"SELECT * FROM {table_name} LIMIT 0")).keys())
            total = conn.execute(text(f"SELECT COUNT(*) FROM {table_name}")).scalar_one()
        create_sql = self._create_sql(table_name)
        if total == 0:
            (output_path / f"{prefix}_00001.sql").write_text(
                render_chunk(table_name, columns, [], create_sql), encoding="utf-8"
            )
            logger.info(f"  {table_name}: 0 rows -> schema only")
            return {"rows": 0, "files": 1, "range_queries": 0}

        query = text(
            f"SELECT rowid AS {CURSOR_COLUMN}, {', '.join(columns)} FROM {table_name} "
            f"WHERE rowid > :cursor ORDER BY rowid LIMIT :limit"
        )

        cursor = 0
        file_num = 0
        exported = 0
        queries = 0
        with self.engine.connect() as conn:
            while True:
                chunk: List[Any] = conn.execute(
                    query, {"cursor": cursor, "limit": self.provider_chunk_size}
                ).all()
                queries += 1
                if not chunk:
                    break

                file_num += 1
                sql = render_chunk(
                    table_name, columns, (row[1:] for row in chunk),
                    create_sql if file_num == 1 else None,
                )
                (output_path / f"{prefix}_{file_num:05d}.sql").write_text(sql, encoding="utf-8")

                cursor = chunk[-1][0]
                exported += len(chunk)
                if file_num % 500 == 0:
                    logger.info(f"    {table_name}: {exported:,} / {total:,} exported...")
                if len(chunk) < self.provider_chunk_size:
                    break

        self.range_queries += queries
        logger.info(f"  {table_name}: {exported:,} rows -> {file_num} files ({queries} range queries)")
        return {"rows": exported, "files": file_num, "range_queries": queries}
