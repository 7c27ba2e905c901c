"""Per-run state shared by the ingestion and aggregation stages."""

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Set

from ..ingestion.taxonomy import TaxonomyEntry


@dataclass
class BuildContext:
    """Mutable state owned by a single build invocation.

    A new context is created for every run and dropped when the run ends, so
    slug seen-sets never leak between runs in the same process.
    """
    taxonomy: Dict[str, TaxonomyEntry]
    provider_slugs: Set[str] = field(default_factory=set)
    city_slugs: Set[str] = field(default_factory=set)
    accepted: int = 0
    skipped: int = 0
    skip_reasons: Counter = field(default_factory=Counter)

    def record_skip(self, reason: str) -> None:
        self.skipped += 1
        self.skip_reasons[reason] += 1
