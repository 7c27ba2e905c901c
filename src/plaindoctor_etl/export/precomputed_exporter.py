"""Compact JSON summary embedded by the front end for its hottest pages."""

import json
from pathlib import Path
from typing import Any, Dict, Union
import structlog
from sqlalchemy import Engine, text

from ..store.database import frame_records, read_frame

logger = structlog.get_logger()


def _stat_value(value: str) -> Union[int, float, str]:
    try:
        return int(value)
    except (TypeError, ValueError):
        pass
    try:
        return float(value)
    except (TypeError, ValueError):
        return value


class PrecomputedExporter:
    """Writes all states, all specialties and the national counters as JSON."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def build_summary(self) -> Dict[str, Any]:
        states = frame_records(read_frame(
            self.engine,
            "SELECT abbr, name, slug, provider_count, specialty_count "
            "FROM states ORDER BY name COLLATE NOCASE",
        ))
        specialties = frame_records(read_frame(
            self.engine,
            "SELECT code, name, category, slug, provider_count "
            "FROM specialties ORDER BY provider_count DESC, code",
        ))
        with self.engine.connect() as conn:
            stats_rows = conn.execute(text("SELECT key, value FROM _stats ORDER BY key")).all()

        return {
            "states": states,
            "specialties": specialties,
            "nationalStats": {key: _stat_value(value) for key, value in stats_rows},
        }

    def export_precomputed(self, output_path: str) -> Dict[str, Any]:
        data = self.build_summary()
        out = Path(output_path)
        out.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(data, separators=(",", ":"))
        out.write_text(payload, encoding="utf-8")

        size_kb = len(payload) / 1024
        logger.info(f"Wrote {out} ({size_kb:.1f} KB)")
        logger.info(f"  states: {len(data['states'])}")
        logger.info(f"  specialties: {len(data['specialties'])}")
        logger.info(f"  nationalStats keys: {', '.join(data['nationalStats'])}")
        return {
            "output_path": str(out),
            "states": len(data["states"]),
            "specialties": len(data["specialties"]),
            "national_stats": data["nationalStats"],
            "size_kb": round(size_kb, 1),
        }
