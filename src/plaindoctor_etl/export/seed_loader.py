"""Replay of exported seed files into a SQLite store."""

from pathlib import Path
from typing import Any, Dict, Union
import structlog
from sqlalchemy import create_engine

from ..core.exceptions import MissingInputError

logger = structlog.get_logger()


def replay_seed_files(seed_dir: Union[str, Path], db_path: Union[str, Path]) -> Dict[str, Any]:
    """Execute every ``*.sql`` file in ``seed_dir`` in filename order."""
    seed_path = Path(seed_dir)
    if not seed_path.is_dir():
        raise MissingInputError(f"Seed directory not found: {seed_path}")

    files = sorted(seed_path.glob("*.sql"))
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f"sqlite:///{db_path}", echo=False)
    raw = engine.raw_connection()
    try:
        for seed_file in files:
            logger.debug(f"Replaying {seed_file.name}")
            raw.driver_connection.executescript(seed_file.read_text(encoding="utf-8"))
        raw.commit()
    finally:
        raw.close()
        engine.dispose()

    logger.info(f"Replayed {len(files)} seed files into {db_path}")
    return {"files_replayed": len(files), "db_path": str(db_path)}
