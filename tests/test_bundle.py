import io
import zipfile

import pandas as pd
import pytest

from sbt_admin.errors import ConfigurationError, OperationError, ValidationError
from sbt_admin.services.bundle import (
    build_csv_pack,
    csv_pack,
    export_bundle,
    import_bundle,
    validate_bundle,
)
from tests.fakes import FakePostgrest

SEEDED = {
    "invoices": [
        {"trips_memo_no": "SBT-001", "customer": "Acme", "total": "1500"},
        {"trips_memo_no": "SBT-002", "customer": "Zen", "total": "900"},
    ],
    "customers": [{"id": 1, "customers_name": "Acme", "customers_address1": "1 Main Rd", "customers_address2": None}],
    "areas": [{"id": 3, "locationArea": "Chennai", "locationCategory": "Local"}],
    "calculations": [{"id": 7, "products_type_category": "Transport_Sedan_Local", "products_driver_bata": "300"}],
    "lookup": [{"id": 2, "vehicle_type": "Sedan"}],
}


def test_export_has_every_table_as_stored(make_dl):
    doc = export_bundle(make_dl(FakePostgrest(SEEDED)))
    assert list(doc) == ["invoices", "customers", "areas", "calculations", "lookup"]
    assert doc == SEEDED


def test_export_without_key_is_empty_tables(make_dl):
    doc = export_bundle(make_dl(FakePostgrest(SEEDED), key=None))
    assert doc == {table: [] for table in SEEDED}


def test_round_trip_into_empty_backend(make_dl):
    doc = export_bundle(make_dl(FakePostgrest(SEEDED)))

    target = FakePostgrest()
    report = import_bundle(make_dl(target), doc)

    assert target.tables == SEEDED
    assert report.counts == {"invoices": 2, "customers": 1, "areas": 1, "calculations": 1, "lookup": 1}
    assert report.total == 6


def test_import_upserts_by_conflict_key(make_dl):
    target = FakePostgrest(SEEDED)
    doc = {
        "invoices": [{"trips_memo_no": "SBT-002", "customer": "Zen", "total": "950"}],
        "customers": [{"id": 1, "customers_name": "Acme Ltd"}, {"customers_name": "New Co"}],
        "areas": [],
        "calculations": [],
        "lookup": [],
    }
    import_bundle(make_dl(target), doc)

    assert target.tables["invoices"][1]["total"] == "950"
    assert len(target.tables["invoices"]) == 2
    assert [c["customers_name"] for c in target.tables["customers"]] == ["Acme Ltd", "New Co"]
    assert target.tables["customers"][1]["id"] == 2

    posts = [r for r in target.requests if r.method == "POST"]
    assert posts[0].url.params["on_conflict"] == "trips_memo_no"
    assert "on_conflict" not in posts[1].url.params
    assert posts[1].url.params["columns"] == "customers_name,id"
    assert "missing=default" in posts[1].headers["Prefer"]


def test_missing_key_rejects_before_any_write(make_dl):
    target = FakePostgrest()
    doc = {table: rows for table, rows in SEEDED.items() if table != "lookup"}

    with pytest.raises(ValidationError) as excinfo:
        import_bundle(make_dl(target), doc)

    assert excinfo.value.problems == ["missing key 'lookup'"]
    assert target.requests == []


def test_validation_lists_every_problem():
    with pytest.raises(ValidationError) as excinfo:
        validate_bundle({"invoices": {}, "customers": [1], "areas": []})
    assert excinfo.value.problems == [
        "'invoices' must be a list of rows",
        "'customers' must contain only objects",
        "missing key 'calculations'",
        "missing key 'lookup'",
    ]


def test_non_object_document_is_invalid():
    with pytest.raises(ValidationError):
        validate_bundle([])


def test_import_without_key_fails(make_dl):
    target = FakePostgrest()
    with pytest.raises(ConfigurationError):
        import_bundle(make_dl(target, key=None), SEEDED)
    assert target.requests == []


def test_failed_table_keeps_earlier_tables(make_dl):
    target = FakePostgrest()
    target.fail("areas", message="permission denied for table areas")

    with pytest.raises(OperationError) as excinfo:
        import_bundle(make_dl(target), SEEDED)

    assert excinfo.value.operation == "import_areas"
    assert "permission denied" in excinfo.value.message
    assert target.tables["invoices"] == SEEDED["invoices"]
    assert target.tables["customers"] == SEEDED["customers"]
    assert target.tables["calculations"] == []
    assert target.tables["lookup"] == []


def test_csv_pack_has_one_csv_per_table(make_dl):
    blob, size = csv_pack(make_dl(FakePostgrest(SEEDED)))
    assert size == len(blob)

    with zipfile.ZipFile(io.BytesIO(blob)) as z:
        assert sorted(z.namelist()) == sorted(f"{t}.csv" for t in SEEDED)
        invoices = pd.read_csv(z.open("invoices.csv"))
    assert list(invoices["trips_memo_no"]) == ["SBT-001", "SBT-002"]


def test_csv_pack_handles_empty_tables():
    pack = build_csv_pack({table: [] for table in SEEDED})
    assert set(pack.tables) == set(SEEDED)
    assert zipfile.ZipFile(io.BytesIO(pack.to_zip_bytes())).namelist()
