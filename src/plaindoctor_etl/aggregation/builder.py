"""Summary tables derived from the ingested providers."""

from typing import Any, Dict
import structlog
from sqlalchemy import Engine, text

from ..core.context import BuildContext
from ..normalization.slugs import claim_unique, slugify
from ..normalization.states import state_name

logger = structlog.get_logger()


class AggregationBuilder:
    """Builds specialties, states, cities and specialty_state via GROUP BY."""

    def __init__(self, config, engine: Engine, context: BuildContext):
        """Initialize the aggregation builder."""
        self.config = config
        self.engine = engine
        self.context = context
        self.city_min_providers = config.build.city_min_providers

    def build_all(self) -> Dict[str, Any]:
        """Build every summary table and return row counts per table."""
        result = {
            "specialties": self.build_specialties(),
            "states": self.build_states(),
            "cities": self.build_cities(),
            "specialty_state": self.build_specialty_state(),
        }
        logger.info(f"Aggregation completed: {result}")
        return result

    def build_specialties(self) -> int:
        logger.info("Building specialties table...")
        with self.engine.begin() as conn:
            conn.execute(text("""
                INSERT INTO specialties (code, name, category, slug, provider_count)
                SELECT specialty_code, MIN(specialty), NULL, '', COUNT(*) AS cnt
                FROM providers
                GROUP BY specialty_code
                ORDER BY cnt DESC
            """))

            rows = conn.execute(text("SELECT code, name FROM specialties")).all()
            updates = []
            for code, observed_name in rows:
                info = self.context.taxonomy.get(code)
                if info:
                    updates.append({"code": code, "name": info.name,
                                    "category": info.category, "slug": slugify(info.name)})
                else:
                    updates.append({"code": code, "name": observed_name,
                                    "category": None, "slug": slugify(observed_name)})
            if updates:
                conn.execute(
                    text("UPDATE specialties SET name = :name, category = :category, slug = :slug "
                         "WHERE code = :code"),
                    updates,
                )

            renamed = self._dedupe_specialty_slugs(conn)
            count = conn.execute(text("SELECT COUNT(*) FROM specialties")).scalar_one()

        logger.info(f"  {count} specialties ({renamed} slugs suffixed)")
        return count

    def _dedupe_specialty_slugs(self, conn) -> int:
        """Suffix all but the largest specialty sharing a slug with its code."""
        duplicates = conn.execute(text(
            "SELECT slug FROM specialties GROUP BY slug HAVING COUNT(*) > 1 ORDER BY slug"
        )).scalars().all()
        if not duplicates:
            return 0

        taken = set(conn.execute(text("SELECT slug FROM specialties")).scalars().all())
        renamed = 0
        for slug in duplicates:
            group = conn.execute(
                text("SELECT code FROM specialties WHERE slug = :slug "
                     "ORDER BY provider_count DESC, code"),
                {"slug": slug},
            ).scalars().all()
            for code in group[1:]:
                new_slug = claim_unique(f"{slug}-{code[:6].lower()}", taken)
                conn.execute(
                    text("UPDATE specialties SET slug = :slug WHERE code = :code"),
                    {"slug": new_slug, "code": code},
                )
                renamed += 1
        return renamed

    def build_states(self) -> int:
        logger.info("Building states table...")
        with self.engine.begin() as conn:
            conn.execute(text("""
                INSERT INTO states (abbr, name, slug, provider_count, specialty_count)
                SELECT state, '', '', COUNT(*) AS cnt, COUNT(DISTINCT specialty_code)
                FROM providers
                GROUP BY state
                ORDER BY cnt DESC
            """))
            abbrs = conn.execute(text("SELECT abbr FROM states")).scalars().all()
            updates = []
            for abbr in abbrs:
                name = state_name(abbr)
                updates.append({"abbr": abbr, "name": name, "slug": slugify(name)})
            if updates:
                conn.execute(
                    text("UPDATE states SET name = :name, slug = :slug WHERE abbr = :abbr"),
                    updates,
                )
            count = len(abbrs)

        logger.info(f"  {count} states")
        return count

    def build_cities(self) -> int:
        logger.info("Building cities table...")
        with self.engine.begin() as conn:
            conn.execute(
                text("""
                    INSERT INTO cities (city, state, slug, provider_count)
                    SELECT city, state, '', COUNT(*) AS cnt
                    FROM providers
                    GROUP BY city, state
                    HAVING cnt >= :min_providers
                    ORDER BY cnt DESC, city, state
                """),
                {"min_providers": self.city_min_providers},
            )
            rows = conn.execute(text("SELECT id, city, state FROM cities ORDER BY id")).all()
            updates = []
            for city_id, city, state in rows:
                slug = claim_unique(slugify(f"{city}-{state}"), self.context.city_slugs)
                updates.append({"id": city_id, "slug": slug})
            if updates:
                conn.execute(text("UPDATE cities SET slug = :slug WHERE id = :id"), updates)
            count = len(rows)

        logger.info(f"  {count} cities ({self.city_min_providers}+ providers)")
        return count

    def build_specialty_state(self) -> int:
        logger.info("Building specialty_state table...")
        with self.engine.begin() as conn:
            conn.execute(text("""
                INSERT INTO specialty_state (specialty_code, state, provider_count)
                SELECT specialty_code, state, COUNT(*) AS cnt
                FROM providers
                GROUP BY specialty_code, state
                ORDER BY cnt DESC
            """))
            count = conn.execute(text("SELECT COUNT(*) FROM specialty_state")).scalar_one()

        logger.info(f"  {count} specialty x state combinations")
        return count
