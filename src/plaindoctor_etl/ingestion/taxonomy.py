"""NUCC taxonomy reference loader."""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union
import structlog

from ..core.exceptions import MissingInputError
from ..normalization.csv_line import parse_line

logger = structlog.get_logger()

# Column positions in the NUCC taxonomy file
CODE_COL = 0
CLASSIFICATION_COL = 2
SPECIALIZATION_COL = 3
DISPLAY_NAME_COL = 6
SECTION_COL = 7

INDIVIDUAL_SECTION = "Individual"


@dataclass(frozen=True)
class TaxonomyEntry:
    """Specialty display name and category for one taxonomy code."""
    name: str
    category: Optional[str]


def _field(fields, index: int) -> str:
    return fields[index].strip() if index < len(fields) else ""


def load_taxonomy(path: Union[str, Path], encoding: str = "utf-8") -> Dict[str, TaxonomyEntry]:
    """Load individual-practitioner taxonomy codes.

    Returns a mapping of taxonomy code to :class:`TaxonomyEntry`. Rows from
    any section other than ``Individual`` (groups, non-individual entities)
    are dropped, so a code absent from the map is either malformed or
    institutional.

    Raises:
        MissingInputError: if the taxonomy file does not exist.
    """
    taxonomy_path = Path(path)
    if not taxonomy_path.exists():
        raise MissingInputError(f"NUCC taxonomy file not found: {taxonomy_path}")

    taxonomy: Dict[str, TaxonomyEntry] = {}
    with open(taxonomy_path, "r", encoding=encoding, errors="replace") as fh:
        next(fh, None)  # header
        for raw in fh:
            line = raw.strip()
            if not line:
                continue
            fields = parse_line(line)
            code = _field(fields, CODE_COL)
            if not code or _field(fields, SECTION_COL) != INDIVIDUAL_SECTION:
                continue

            classification = _field(fields, CLASSIFICATION_COL)
            specialization = _field(fields, SPECIALIZATION_COL)
            display_name = _field(fields, DISPLAY_NAME_COL)
            composed = f"{classification} - {specialization}" if specialization else classification

            taxonomy[code] = TaxonomyEntry(
                name=display_name or composed,
                category=classification,
            )

    logger.info(f"Loaded {len(taxonomy)} individual taxonomy codes from {taxonomy_path}")
    return taxonomy
