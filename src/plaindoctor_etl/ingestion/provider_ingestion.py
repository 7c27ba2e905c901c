"""NPPES extract ingestion engine."""

from collections import Counter
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union
import structlog
from sqlalchemy import Engine, func, select

from ..core.context import BuildContext
from ..core.exceptions import MissingColumnError, MissingInputError
from ..normalization.csv_line import parse_line
from ..normalization.slugs import claim_unique, slugify
from ..normalization.states import VALID_STATES
from ..store.schema import providers

logger = structlog.get_logger()

# NPPES column headers, as published
COL_NPI = "NPI"
COL_ENTITY_TYPE = "Entity Type Code"
COL_FIRST_NAME = "Provider First Name"
COL_LAST_NAME = "Provider Last Name (Legal Name)"
COL_CREDENTIAL = "Provider Credential Text"
COL_SEX = "Provider Sex Code"
COL_DEACTIVATION = "NPI Deactivation Date"
COL_REACTIVATION = "NPI Reactivation Date"
COL_STATE = "Provider Business Practice Location Address State Name"
COL_CITY = "Provider Business Practice Location Address City Name"
COL_POSTAL = "Provider Business Practice Location Address Postal Code"
COL_PHONE = "Provider Business Practice Location Address Telephone Number"
COL_ADDRESS = "Provider First Line Business Practice Location Address"
COL_ENUMERATION = "Provider Enumeration Date"
COL_TAXONOMY = "Healthcare Provider Taxonomy Code_1"

REQUIRED_COLUMNS = (COL_NPI, COL_ENTITY_TYPE, COL_FIRST_NAME, COL_LAST_NAME)

INDIVIDUAL_ENTITY_TYPE = "1"


class IngestionState(Enum):
    """Position of the ingestion engine in the input stream."""
    AWAIT_HEADER = "await_header"
    STREAMING = "streaming"
    DONE = "done"


class HeaderIndex:
    """Column name to position lookup, resolved once from the header row."""

    def __init__(self, positions: Dict[str, int]):
        self.positions = positions

    @classmethod
    def from_header(cls, line: str, required: Iterable[str] = REQUIRED_COLUMNS) -> "HeaderIndex":
        """Build the lookup from a raw header line.

        Raises:
            MissingColumnError: if any required column is absent.
        """
        headers = parse_line(line.lstrip("\ufeff"))
        positions = {}
        for i, header in enumerate(headers):
            positions[header.strip().replace('"', "")] = i

        missing = [name for name in required if name not in positions]
        if missing:
            raise MissingColumnError(missing)
        return cls(positions)

    def __len__(self) -> int:
        return len(self.positions)

    def __contains__(self, name: str) -> bool:
        return name in self.positions

    def get(self, fields: List[str], name: str) -> str:
        """Trimmed, unquoted value of ``name`` in ``fields``; '' when absent."""
        pos = self.positions.get(name)
        if pos is None or pos >= len(fields):
            return ""
        return fields[pos].strip().replace('"', "")


@dataclass
class ProviderRecord:
    """Validated provider row ready for insertion."""
    npi: str
    first_name: str
    last_name: str
    credential: Optional[str]
    gender: Optional[str]
    specialty: str
    specialty_code: str
    city: str
    state: str
    zip: str
    phone: Optional[str]
    address_line1: Optional[str]
    enumeration_date: Optional[str]
    slug: str


# Each filter returns True when the record should be kept.
RecordFilter = Callable[[HeaderIndex, List[str], BuildContext], bool]


def _is_individual(header: HeaderIndex, fields: List[str], ctx: BuildContext) -> bool:
    return header.get(fields, COL_ENTITY_TYPE) == INDIVIDUAL_ENTITY_TYPE


def _is_active(header: HeaderIndex, fields: List[str], ctx: BuildContext) -> bool:
    deactivated = header.get(fields, COL_DEACTIVATION)
    reactivated = header.get(fields, COL_REACTIVATION)
    return not (deactivated and not reactivated)


def _has_valid_state(header: HeaderIndex, fields: List[str], ctx: BuildContext) -> bool:
    return header.get(fields, COL_STATE) in VALID_STATES


def _has_city(header: HeaderIndex, fields: List[str], ctx: BuildContext) -> bool:
    return bool(header.get(fields, COL_CITY))


def _has_known_taxonomy(header: HeaderIndex, fields: List[str], ctx: BuildContext) -> bool:
    return header.get(fields, COL_TAXONOMY) in ctx.taxonomy


def _has_required_fields(header: HeaderIndex, fields: List[str], ctx: BuildContext) -> bool:
    return all(header.get(fields, col) for col in (COL_NPI, COL_FIRST_NAME, COL_LAST_NAME))


# Order only decides which reason a rejected record is counted under;
# the surviving set is the same for any order.
FILTER_CHAIN: Tuple[Tuple[str, RecordFilter], ...] = (
    ("entity_type", _is_individual),
    ("inactive", _is_active),
    ("state", _has_valid_state),
    ("city", _has_city),
    ("taxonomy", _has_known_taxonomy),
    ("required_fields", _has_required_fields),
)


def provider_slug(first_name: str, last_name: str, npi: str) -> str:
    """Candidate slug before collision handling."""
    return slugify(f"{first_name}-{last_name}-{npi[-4:]}")


def find_extract_file(raw_dir: Union[str, Path]) -> Path:
    """Newest ``npidata_*.csv`` in ``raw_dir``, ignoring the header-only file."""
    raw_path = Path(raw_dir)
    if not raw_path.is_dir():
        raise MissingInputError(f"Raw data directory not found: {raw_path}")

    candidates = sorted(
        p for p in raw_path.glob("npidata_*.csv")
        if p.is_file() and "fileheader" not in p.name
    )
    if not candidates:
        available = sorted(p.name for p in raw_path.iterdir())
        raise MissingInputError(f"No npidata_*.csv file found in {raw_path} (available: {available})")
    return candidates[-1]


class ProviderIngestionEngine:
    """Streams the extract into the providers table in batched transactions."""

    def __init__(self, config, engine: Engine, context: BuildContext,
                 filters: Tuple[Tuple[str, RecordFilter], ...] = FILTER_CHAIN):
        """Initialize the ingestion engine."""
        self.config = config
        self.engine = engine
        self.context = context
        self.filters = filters
        self.batch_size = config.build.batch_size
        self.progress_every = config.build.progress_every
        self.state = IngestionState.AWAIT_HEADER
        self.header: Optional[HeaderIndex] = None
        self._insert = providers.insert().prefix_with("OR IGNORE")

    def ingest_file(self, extract_path: Union[str, Path]) -> Dict[str, Any]:
        """Ingest an extract file from disk."""
        path = Path(extract_path)
        if not path.exists():
            raise MissingInputError(f"Extract file not found: {path}")

        logger.info(f"Processing extract: {path}")
        with open(path, "r", encoding=self.config.build.encoding, errors="replace", newline="") as fh:
            result = self.ingest_lines(fh)
        result["extract_path"] = str(path)
        return result

    def ingest_lines(self, lines: Iterable[str]) -> Dict[str, Any]:
        """Ingest an iterable of raw lines, the first being the header.

        Each call is a separate input with its own header; counts in the
        result cover this call only.
        """
        batch: List[Dict[str, Any]] = []
        batches_written = 0
        stored_before = self._stored_count()
        accepted_before = self.context.accepted
        skipped_before = self.context.skipped
        reasons_before = Counter(self.context.skip_reasons)
        next_progress = self.progress_every
        self.state = IngestionState.AWAIT_HEADER
        self.header = None

        for raw in lines:
            line = raw.rstrip("\r\n")

            if self.state is IngestionState.AWAIT_HEADER:
                self.header = HeaderIndex.from_header(line)
                self.state = IngestionState.STREAMING
                logger.info(f"Found {len(self.header)} columns")
                continue

            record = self.process_line(line)
            if record is None:
                continue

            batch.append(asdict(record))
            if len(batch) >= self.batch_size:
                self._write_batch(batch)
                batches_written += 1
                batch = []
                if self.progress_every and self.context.accepted >= next_progress:
                    logger.info(
                        f"  {self.context.accepted:,} providers accepted, "
                        f"{self.context.skipped:,} skipped..."
                    )
                    next_progress += self.progress_every

        if self.state is IngestionState.AWAIT_HEADER:
            raise MissingColumnError(REQUIRED_COLUMNS)

        if batch:
            self._write_batch(batch)
            batches_written += 1

        self.state = IngestionState.DONE

        accepted = self.context.accepted - accepted_before
        stored = self._stored_count() - stored_before
        skipped = self.context.skipped - skipped_before

        result = {
            "accepted": accepted,
            "stored": stored,
            "duplicates_ignored": accepted - stored,
            "skipped": skipped,
            "skip_reasons": dict(self.context.skip_reasons - reasons_before),
            "batches_written": batches_written,
        }
        logger.info(
            f"Providers: {stored:,} inserted, {skipped:,} skipped, "
            f"{result['duplicates_ignored']:,} duplicate NPIs ignored"
        )
        return result

    def process_line(self, line: str) -> Optional[ProviderRecord]:
        """Apply the filter chain to one data line.

        Returns the validated record, or None after counting the skip.
        """
        fields = parse_line(line)
        for reason, keep in self.filters:
            if not keep(self.header, fields, self.context):
                self.context.record_skip(reason)
                return None

        record = self._build_record(fields)
        self.context.accepted += 1
        return record

    def _build_record(self, fields: List[str]) -> ProviderRecord:
        def get(col: str) -> str:
            return self.header.get(fields, col)

        def optional(col: str) -> Optional[str]:
            return get(col) or None

        npi = get(COL_NPI)
        first_name = get(COL_FIRST_NAME)
        last_name = get(COL_LAST_NAME)
        taxonomy_code = get(COL_TAXONOMY)

        slug = claim_unique(provider_slug(first_name, last_name, npi), self.context.provider_slugs)

        return ProviderRecord(
            npi=npi,
            first_name=first_name,
            last_name=last_name,
            credential=optional(COL_CREDENTIAL),
            gender=optional(COL_SEX),
            specialty=self.context.taxonomy[taxonomy_code].name,
            specialty_code=taxonomy_code,
            city=get(COL_CITY),
            state=get(COL_STATE),
            zip=get(COL_POSTAL)[:5],
            phone=optional(COL_PHONE),
            address_line1=optional(COL_ADDRESS),
            enumeration_date=optional(COL_ENUMERATION),
            slug=slug,
        )

    def _stored_count(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(providers)).scalar_one()

    def _write_batch(self, batch: List[Dict[str, Any]]) -> None:
        """Insert one batch inside a single transaction."""
        with self.engine.begin() as conn:
            conn.execute(self._insert, batch)
