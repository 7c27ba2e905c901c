"""Tests for the provider ingestion engine."""

import pytest
from sqlalchemy import text

from conftest import EXTRACT_COLUMNS, extract_lines, generated_rows, header_line
from plaindoctor_etl.core.context import BuildContext
from plaindoctor_etl.core.exceptions import MissingColumnError, MissingInputError
from plaindoctor_etl.ingestion.provider_ingestion import (
    HeaderIndex,
    IngestionState,
    ProviderIngestionEngine,
    find_extract_file,
    provider_slug,
)


def fetch_providers(engine):
    with engine.connect() as conn:
        return [dict(row) for row in conn.execute(text("SELECT * FROM providers ORDER BY rowid")).mappings()]


class TestHeaderIndex:

    def test_resolves_positions(self):
        header = HeaderIndex.from_header(header_line())
        assert len(header) == len(EXTRACT_COLUMNS)
        assert header.positions["NPI"] == 0

    def test_missing_required_column(self):
        columns = [key for key in EXTRACT_COLUMNS if key != "last"]
        with pytest.raises(MissingColumnError) as exc_info:
            HeaderIndex.from_header(header_line(columns))
        assert exc_info.value.missing == ["Provider Last Name (Legal Name)"]

    def test_strips_byte_order_mark(self):
        header = HeaderIndex.from_header("\ufeff" + header_line())
        assert "NPI" in header

    def test_absent_optional_column_reads_empty(self):
        columns = ["npi", "entity", "first", "last"]
        header = HeaderIndex.from_header(header_line(columns))
        assert header.get(["1", "1", "A", "B"], "Provider Credential Text") == ""


class TestFilterChain:

    def test_accepts_valid_record(self, ingest, store_engine):
        result, context = ingest([{}])

        assert result["stored"] == 1
        assert result["skipped"] == 0
        row = fetch_providers(store_engine)[0]
        assert row["npi"] == "1234567890"
        assert row["specialty"] == "Family Medicine Physician"
        assert row["specialty_code"] == "207Q00000X"
        assert row["zip"] == "62701"
        assert row["slug"] == "jane-smith-7890"

    @pytest.mark.parametrize("overrides, reason", [
        ({"entity": "2"}, "entity_type"),
        ({"deactivated": "01/01/2020"}, "inactive"),
        ({"state": "ON"}, "state"),
        ({"state": ""}, "state"),
        ({"city": "  "}, "city"),
        ({"taxonomy": "261QP2300X"}, "taxonomy"),
        ({"taxonomy": "BOGUS"}, "taxonomy"),
        ({"first": ""}, "required_fields"),
        ({"last": " "}, "required_fields"),
        ({"npi": ""}, "required_fields"),
    ])
    def test_rejections(self, ingest, store_engine, overrides, reason):
        result, context = ingest([overrides])

        assert result["stored"] == 0
        assert result["skipped"] == 1
        assert result["skip_reasons"] == {reason: 1}
        assert fetch_providers(store_engine) == []

    def test_reactivated_record_is_kept(self, ingest):
        result, _ = ingest([{"deactivated": "01/01/2020", "reactivated": "02/01/2020"}])
        assert result["stored"] == 1

    def test_organizations_never_stored(self, ingest, store_engine):
        rows = generated_rows(6)
        for row in rows[::2]:
            row["entity"] = "2"
        result, _ = ingest(rows)

        stored = fetch_providers(store_engine)
        assert result["skip_reasons"] == {"entity_type": 3}
        assert {row["npi"] for row in stored} == {r["npi"] for r in rows[1::2]}

    def test_first_failing_filter_is_counted(self, ingest):
        result, _ = ingest([{"entity": "2", "state": "ZZ", "taxonomy": "BOGUS"}])
        assert result["skip_reasons"] == {"entity_type": 1}


class TestNormalization:

    def test_optional_fields_become_null(self, ingest, store_engine):
        ingest([{"credential": "", "sex": "", "phone": "", "address": "", "enumerated": ""}])
        row = fetch_providers(store_engine)[0]
        for column in ("credential", "gender", "phone", "address_line1", "enumeration_date"):
            assert row[column] is None

    def test_fields_are_trimmed_and_unquoted(self, ingest, store_engine):
        ingest([{"first": '  "Jo"  ', "city": " Austin ", "state": "TX"}])
        row = fetch_providers(store_engine)[0]
        assert row["first_name"] == "Jo"
        assert row["city"] == "Austin"

    def test_reordered_columns(self, ingest, store_engine):
        columns = list(reversed(list(EXTRACT_COLUMNS)))
        result, _ = ingest([{}], columns=columns)
        assert result["stored"] == 1
        assert fetch_providers(store_engine)[0]["last_name"] == "Smith"


class TestSlugs:

    def test_collision_gets_numeric_suffix(self, ingest, store_engine):
        rows = [
            {"npi": "1000007890"},
            {"npi": "2000007890"},
            {"npi": "3000001111", "first": "Ann"},
        ]
        ingest(rows)

        stored = {row["npi"]: row["slug"] for row in fetch_providers(store_engine)}
        assert stored == {
            "1000007890": "jane-smith-7890",
            "2000007890": "jane-smith-7890-1",
            "3000001111": "ann-smith-1111",
        }

    def test_slugs_unique_across_batches(self, ingest, store_engine):
        rows = [{"npi": f"{i}000000555"} for i in range(1, 10)]
        result, _ = ingest(rows)

        slugs = [row["slug"] for row in fetch_providers(store_engine)]
        assert result["batches_written"] == 3
        assert len(slugs) == len(set(slugs)) == 9

    def test_provider_slug(self):
        assert provider_slug("Mary Ann", "O'Neil", "1234567890") == "mary-ann-o-neil-7890"

    def test_contexts_do_not_share_seen_sets(self, ingest):
        _, first = ingest([{"npi": "1000000001"}])
        _, second = ingest([{"npi": "2000000001"}])
        assert first.provider_slugs == {"jane-smith-0001"}
        assert second.provider_slugs == {"jane-smith-0001"}


class TestBatching:

    def test_duplicate_npi_ignored(self, ingest, store_engine):
        rows = [{"npi": "1111111111"}, {"npi": "1111111111", "first": "Other"}]
        result, _ = ingest(rows)

        assert result["accepted"] == 2
        assert result["stored"] == 1
        assert result["duplicates_ignored"] == 1
        assert fetch_providers(store_engine)[0]["first_name"] == "Jane"

    def test_batch_count(self, ingest):
        result, _ = ingest(generated_rows(9))
        # batch_size is 4 in the sample config
        assert result["batches_written"] == 3
        assert result["stored"] == 9

    def test_npi_unique_in_store(self, ingest, store_engine):
        rows = generated_rows(5) + generated_rows(5)
        ingest(rows)
        npis = [row["npi"] for row in fetch_providers(store_engine)]
        assert len(npis) == len(set(npis)) == 5


class TestEngineLifecycle:

    def test_states(self, sample_config, store_engine, taxonomy):
        engine = ProviderIngestionEngine(sample_config, store_engine, BuildContext(taxonomy=taxonomy))
        assert engine.state is IngestionState.AWAIT_HEADER
        engine.ingest_lines(extract_lines([{}]))
        assert engine.state is IngestionState.DONE

    def test_second_input_reads_its_own_header(self, sample_config, store_engine, taxonomy):
        engine = ProviderIngestionEngine(sample_config, store_engine, BuildContext(taxonomy=taxonomy))
        first = engine.ingest_lines(extract_lines(generated_rows(3) + [{"entity": "2"}]))
        second = engine.ingest_lines(extract_lines(generated_rows(2, start_npi=1200000000)))

        assert first["skipped"] == 1
        assert first["skip_reasons"] == {"entity_type": 1}
        assert second["accepted"] == 2
        assert second["stored"] == 2
        assert second["skipped"] == 0
        assert second["skip_reasons"] == {}
        assert engine.state is IngestionState.DONE

    def test_empty_input_is_fatal(self, sample_config, store_engine, taxonomy):
        engine = ProviderIngestionEngine(sample_config, store_engine, BuildContext(taxonomy=taxonomy))
        with pytest.raises(MissingColumnError):
            engine.ingest_lines([])

    def test_missing_extract_file(self, sample_config, store_engine, taxonomy, temp_dir):
        engine = ProviderIngestionEngine(sample_config, store_engine, BuildContext(taxonomy=taxonomy))
        with pytest.raises(MissingInputError):
            engine.ingest_file(temp_dir / "npidata_missing.csv")

    def test_ingest_file(self, sample_config, store_engine, taxonomy, write_extract):
        path = write_extract(generated_rows(3))
        engine = ProviderIngestionEngine(sample_config, store_engine, BuildContext(taxonomy=taxonomy))
        result = engine.ingest_file(path)
        assert result["stored"] == 3
        assert result["extract_path"] == str(path)


class TestFindExtractFile:

    def test_newest_data_file(self, raw_dir):
        for name in ("npidata_pfile_20240101-20240107.csv",
                     "npidata_pfile_20240201-20240207.csv",
                     "npidata_pfile_20240301-20240307_fileheader.csv"):
            (raw_dir / name).write_text("NPI\n")
        assert find_extract_file(raw_dir).name == "npidata_pfile_20240201-20240207.csv"

    def test_no_data_file(self, raw_dir):
        with pytest.raises(MissingInputError):
            find_extract_file(raw_dir)

    def test_missing_directory(self, temp_dir):
        with pytest.raises(MissingInputError):
            find_extract_file(temp_dir / "absent")
