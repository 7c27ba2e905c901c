"""Precomputed global counters stored in the _stats table."""

from typing import Dict
import structlog
from sqlalchemy import Engine, text

logger = structlog.get_logger()

# key -> query; the serving tier reads these instead of counting rows
STATS_QUERIES = [
    ("provider_count", "SELECT COUNT(*) FROM providers"),
    ("specialty_count", "SELECT COUNT(*) FROM specialties"),
    ("state_count", "SELECT COUNT(*) FROM states"),
    ("city_count", "SELECT COUNT(*) FROM cities"),
]


class StatsBuilder:
    """Computes and persists the four national counters."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def build_stats(self) -> Dict[str, int]:
        logger.info("Populating _stats table...")
        stats = {}
        with self.engine.begin() as conn:
            for key, query in STATS_QUERIES:
                value = conn.execute(text(query)).scalar_one()
                conn.execute(
                    text("INSERT OR REPLACE INTO _stats (key, value) VALUES (:key, :value)"),
                    {"key": key, "value": str(value)},
                )
                stats[key] = value
                logger.info(f"  {key} = {value}")
        return stats
