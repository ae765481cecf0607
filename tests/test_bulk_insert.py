import json

import pytest

from app.models.ingestion import BulkIngestionReport
from app.services.bulk_insert import BulkInsertCoordinator
from app.services.row_normalizer import RowNormalizer

from conftest import CSV_HEADER, VENDOR_ID


def _csv(good_rows: int, bad_price_row: bool = True) -> str:
    lines = [CSV_HEADER]
    for i in range(good_rows):
        lines.append(f"Item {i},Desc {i},{10 + i},Misc,{i},1,2,3,4,,\"a, b\"")
    if bad_price_row:
        lines.append("Broken,Bad price,ten dollars,Misc,1,1,1,1,1,,")
    return "\n".join(lines) + "\n"


def test_bad_row_is_reported_and_rest_inserted(store, write_file):
    path = write_file("catalog.csv", _csv(good_rows=4))

    report = BulkInsertCoordinator(store).ingest_file(path, "catalog.csv", VENDOR_ID)

    assert report.inserted_count == 4
    assert report.total_rows == 5
    assert len(report.row_errors) == 1
    assert report.row_errors[0].row_index == 4
    assert report.inserted_count + len(report.row_errors) == report.total_rows
    assert store.count(VENDOR_ID) == 4
    assert store.count("another-vendor") == 0


def test_csv_line_with_extra_fields_is_one_row_error(store, write_file):
    lines = _csv(good_rows=2, bad_price_row=False).splitlines()
    lines.insert(2, "Stray,Too many,5,Misc,1,1,1,1,1,,tag,unexpected,columns")
    path = write_file("catalog.csv", "\n".join(lines) + "\n")

    report = BulkInsertCoordinator(store).ingest_file(path, "catalog.csv", VENDOR_ID)

    assert report.inserted_count == 2
    assert report.total_rows == 3
    assert [(e.row_index, e.reason) for e in report.row_errors] == [(1, "expected 11 fields, saw 13")]
    assert store.count(VENDOR_ID) == 2


def test_json_rows_are_isolated_too(store, write_file):
    rows = [
        {"name": "Mug", "description": "Ceramic", "price": 5, "category": "Kitchen", "tags": "a,b"},
        ["not", "an", "object"],
        {"name": "Cup", "description": "Glass", "price": "-2", "category": "Kitchen"},
        {"name": "Bowl", "description": "Wood", "price": "7.5", "category": "Kitchen", "vendor": "x"},
    ]
    path = write_file("catalog.json", json.dumps(rows))

    report = BulkInsertCoordinator(store).ingest_file(path, "catalog.json", VENDOR_ID)

    assert report.inserted_count == 2
    assert [e.row_index for e in report.row_errors] == [1, 2]
    products, total = store.paginate(VENDOR_ID, limit=10)
    assert total == 2
    assert all(p.vendor_id == VENDOR_ID for p in products)


def test_insert_uses_given_drafts(store):
    normalizer = RowNormalizer()
    drafts = [
        normalizer.normalize({"name": n, "description": "d", "price": "1", "category": "c"}, i, VENDOR_ID)
        for i, n in enumerate(["A", "B"])
    ]

    report = BulkInsertCoordinator(store).insert(drafts, VENDOR_ID)

    assert report.inserted_count == 2
    assert report.total_rows == 2
    assert report.row_errors == []
    assert BulkInsertCoordinator.summary(report) == "Successfully uploaded 2 products"


def test_file_with_only_bad_rows_inserts_nothing(store, write_file):
    path = write_file("catalog.csv", _csv(good_rows=0))

    report = BulkInsertCoordinator(store).ingest_file(path, "catalog.csv", VENDOR_ID)

    assert report.inserted_count == 0
    assert report.total_rows == 1
    assert store.count() == 0
    assert BulkInsertCoordinator.row_error_dicts(report)[0]["row_index"] == 0


def test_report_rejects_inconsistent_counts():
    with pytest.raises(ValueError):
        BulkIngestionReport(inserted_count=2, total_rows=5, row_errors=[])
