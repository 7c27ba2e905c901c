"""Test fixtures and configuration for pytest."""

import pytest
import tempfile
from pathlib import Path

EXTRACT_COLUMNS = {
    "npi": "NPI",
    "entity": "Entity Type Code",
    "last": "Provider Last Name (Legal Name)",
    "first": "Provider First Name",
    "credential": "Provider Credential Text",
    "address": "Provider First Line Business Practice Location Address",
    "city": "Provider Business Practice Location Address City Name",
    "state": "Provider Business Practice Location Address State Name",
    "zip": "Provider Business Practice Location Address Postal Code",
    "phone": "Provider Business Practice Location Address Telephone Number",
    "enumerated": "Provider Enumeration Date",
    "deactivated": "NPI Deactivation Date",
    "reactivated": "NPI Reactivation Date",
    "sex": "Provider Sex Code",
    "taxonomy": "Healthcare Provider Taxonomy Code_1",
}

DEFAULT_ROW = {
    "npi": "1234567890",
    "entity": "1",
    "last": "Smith",
    "first": "Jane",
    "credential": "MD",
    "address": "100 Main St",
    "city": "Springfield",
    "state": "IL",
    "zip": "627011234",
    "phone": "2175550100",
    "enumerated": "05/23/2005",
    "deactivated": "",
    "reactivated": "",
    "sex": "F",
    "taxonomy": "207Q00000X",
}

TAXONOMY_CSV = '''Code,Grouping,Classification,Specialization,Definition,Notes,Display Name,Section
207Q00000X,Allopathic & Osteopathic Physicians,Family Medicine,,"Family Medicine is the medical specialty which is concerned with the total health care of the individual and the family.",,Family Medicine Physician,Individual
207QA0000X,Allopathic & Osteopathic Physicians,Family Medicine,Adolescent Medicine,Definition,,Family Medicine Physician,Individual
207R00000X,Allopathic & Osteopathic Physicians,Internal Medicine,,Definition,,Internal Medicine Physician,Individual
207RC0000X,Allopathic & Osteopathic Physicians,Internal Medicine,Cardiovascular Disease,Definition,,,Individual
363L00000X,Physician Assistants & Advanced Practice Nursing Providers,Nurse Practitioner,,"A ""registered nurse"", licensed, with advanced training",,Nurse Practitioner,Individual

261QP2300X,Ambulatory Health Care Facilities,Clinic/Center,Primary Care,Definition,,Primary Care Clinic/Center,Non-Individual
'''


def quote(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def extract_line(columns=None, **values) -> str:
    """One quoted extract line with DEFAULT_ROW values and ``values`` overrides."""
    keys = columns or list(EXTRACT_COLUMNS)
    row = dict(DEFAULT_ROW, **values)
    return ",".join(quote(row.get(key, "")) for key in keys)


def header_line(columns=None) -> str:
    keys = columns or list(EXTRACT_COLUMNS)
    return ",".join(quote(EXTRACT_COLUMNS[key]) for key in keys)


def extract_lines(rows, columns=None):
    """Header plus one line per override dict, newline-terminated."""
    lines = [header_line(columns)]
    lines.extend(extract_line(columns, **row) for row in rows)
    return [line + "\n" for line in lines]


def generated_rows(count: int, start_npi: int = 1000000000, **overrides):
    """``count`` distinct providers spread over a few states and specialties."""
    states = ["IL", "CA", "NY"]
    codes = ["207Q00000X", "207R00000X", "363L00000X"]
    rows = []
    for i in range(count):
        row = {
            "npi": str(start_npi + i),
            "first": f"First{i}",
            "last": f"O'Last{i}",
            "state": states[i % len(states)],
            "taxonomy": codes[i % len(codes)],
            "city": "Springfield",
        }
        row.update(overrides)
        rows.append(row)
    return rows


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def raw_dir(temp_dir):
    """Raw input directory holding the taxonomy file."""
    raw = temp_dir / "raw"
    raw.mkdir()
    (raw / "nucc_taxonomy.csv").write_text(TAXONOMY_CSV, encoding="utf-8")
    return raw


@pytest.fixture
def sample_config(temp_dir, raw_dir):
    """Sample configuration pointing at the temporary directory."""
    from plaindoctor_etl.core.config import Config

    config = Config()
    config.paths.raw_dir = str(raw_dir)
    config.paths.db_path = str(temp_dir / "plaindoctor.db")
    config.paths.seed_dir = str(temp_dir / "seed")
    config.paths.precomputed_path = str(temp_dir / "precomputed.json")
    config.build.batch_size = 4
    config.store.journal_mode = "DELETE"
    config.export.chunk_size = 2
    config.export.provider_chunk_size = 5
    return config


@pytest.fixture
def taxonomy(raw_dir):
    from plaindoctor_etl.ingestion.taxonomy import load_taxonomy

    return load_taxonomy(raw_dir / "nucc_taxonomy.csv")


@pytest.fixture
def write_extract(raw_dir):
    """Write an extract file into the raw directory."""
    def _write(rows, columns=None, name="npidata_pfile_20240101-20240107.csv"):
        path = raw_dir / name
        path.write_text("".join(extract_lines(rows, columns)), encoding="utf-8")
        return path
    return _write


@pytest.fixture
def store_engine(temp_dir):
    """Writable store with the schema created."""
    from plaindoctor_etl.store.database import create_build_engine
    from plaindoctor_etl.store.schema import metadata

    engine = create_build_engine(temp_dir / "work.db", journal_mode="DELETE")
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def ingest(sample_config, store_engine, taxonomy):
    """Ingest override rows into ``store_engine``; returns (result, context)."""
    from plaindoctor_etl.core.context import BuildContext
    from plaindoctor_etl.ingestion.provider_ingestion import ProviderIngestionEngine

    def _ingest(rows, columns=None):
        context = BuildContext(taxonomy=taxonomy)
        engine = ProviderIngestionEngine(sample_config, store_engine, context)
        result = engine.ingest_lines(extract_lines(rows, columns))
        return result, context
    return _ingest


@pytest.fixture
def built_pipeline(sample_config, write_extract):
    """Pipeline whose store has been built from a generated extract."""
    from plaindoctor_etl.core.pipeline import BuildPipeline

    rows = generated_rows(23)
    rows += generated_rows(11, start_npi=1100000000, city="Chicago", state="IL")
    write_extract(rows)
    pipeline = BuildPipeline(sample_config)
    pipeline.run_build()
    return pipeline
