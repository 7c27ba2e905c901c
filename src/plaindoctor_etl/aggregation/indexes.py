"""Secondary index creation for the serving-tier access paths."""

from typing import Any, Dict
import structlog
from sqlalchemy import Engine, text

from ..store.schema import INDEX_DEFINITIONS, index_statements

logger = structlog.get_logger()


class IndexBuilder:
    """Creates lookup indices once all data has been loaded."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def build_indexes(self) -> Dict[str, Any]:
        logger.info("Creating indices...")
        with self.engine.begin() as conn:
            for statement in index_statements():
                conn.execute(text(statement))
        names = [name for name, _, _ in INDEX_DEFINITIONS]
        logger.info(f"  {len(names)} indices created")
        return {"indexes_created": len(names), "indexes": names}
