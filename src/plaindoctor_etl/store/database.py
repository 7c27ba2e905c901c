"""SQLite engine helpers for building and reading the provider store."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import pandas as pd
import structlog
from sqlalchemy import Engine, create_engine, event, text

from ..core.exceptions import MissingInputError, StoreError

logger = structlog.get_logger()


def create_build_engine(
    db_path: Union[str, Path],
    journal_mode: str = "WAL",
    synchronous: str = "OFF",
) -> Engine:
    """Engine for a store that is being written by a build run."""
    path = Path(db_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StoreError(f"Cannot create store directory {path.parent}: {e}") from e

    engine = create_engine(f"sqlite:///{path}", echo=False)

    @event.listens_for(engine, "connect")
    def _set_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA journal_mode = {journal_mode}")
        cursor.execute(f"PRAGMA synchronous = {synchronous}")
        cursor.close()

    return engine


def open_readonly_engine(db_path: Union[str, Path]) -> Engine:
    """Engine over a finished store; the file is opened read-only."""
    path = Path(db_path)
    if not path.exists():
        raise MissingInputError(f"Database not found: {path}")
    return create_engine(f"sqlite:///file:{path.resolve()}?mode=ro&uri=true", echo=False)


def read_frame(engine: Engine, sql: str, params: Optional[Dict[str, Any]] = None) -> pd.DataFrame:
    """Run a query into a DataFrame with SQL NULLs kept as ``None``."""
    with engine.connect() as conn:
        frame = pd.read_sql_query(text(sql), conn, params=params)
    return frame.astype(object).where(frame.notna(), None)


def frame_records(frame: pd.DataFrame) -> List[Dict[str, Any]]:
    """Rows of ``frame`` as plain dicts, in frame order."""
    return frame.to_dict(orient="records")


def table_count(engine: Engine, table_name: str) -> int:
    with engine.connect() as conn:
        return conn.execute(text(f"SELECT COUNT(*) FROM {table_name}")).scalar_one()


def finalize_store(engine: Engine, db_path: Union[str, Path]) -> None:
    """Close the build engine and leave a single self-contained database file."""
    engine.dispose()
    finalizer = create_engine(f"sqlite:///{Path(db_path)}", echo=False)
    try:
        with finalizer.connect() as conn:
            conn.execute(text("PRAGMA journal_mode = DELETE"))
    finally:
        finalizer.dispose()
