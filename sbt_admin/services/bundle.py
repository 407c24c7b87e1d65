from __future__ import annotations

import io
import logging
import zipfile
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping

import pandas as pd

from sbt_admin.errors import OperationError, ValidationError
from .data_layer import TABLES, DataLayer

logger = logging.getLogger(__name__)

# Conflict target per table; None means the primary key (id).
CONFLICT_KEYS = {
    "invoices": "trips_memo_no",
    "customers": None,
    "areas": None,
    "calculations": None,
    "lookup": None,
}


def export_bundle(dl: DataLayer) -> Dict[str, List[dict]]:
    """All five tables, rows exactly as stored."""
    return {table: dl.repository(table).rows() for table in TABLES}


def validate_bundle(doc: Any) -> Dict[str, List[dict]]:
    if not isinstance(doc, Mapping):
        raise ValidationError(["document must be an object keyed by table name"])
    problems = []
    for table in TABLES:
        if table not in doc:
            problems.append(f"missing key '{table}'")
        elif not isinstance(doc[table], list):
            problems.append(f"'{table}' must be a list of rows")
        elif not all(isinstance(row, Mapping) for row in doc[table]):
            problems.append(f"'{table}' must contain only objects")
    if problems:
        raise ValidationError(problems)
    return {table: doc[table] for table in TABLES}


@dataclass
class ImportReport:
    counts: Dict[str, int]

    @property
    def total(self) -> int:
        return sum(self.counts.values())


def import_bundle(dl: DataLayer, doc: Any) -> ImportReport:
    """
    Upsert every non-empty table of ``doc``.

    The whole document is validated before the first write. Tables are
    written one after another with no transaction: when one fails, the
    tables before it stay imported and the error names the failing table.
    """
    bundle = validate_bundle(doc)
    dl.client.require_key("import_db")

    counts: Dict[str, int] = {}
    for table in TABLES:
        rows = bundle[table]
        if not rows:
            counts[table] = 0
            continue
        try:
            counts[table] = dl.upsert(table, rows, on_conflict=CONFLICT_KEYS[table])
        except OperationError as exc:
            raise OperationError(f"import_{table}", exc.message) from exc
        logger.info("Imported %d rows into %s", counts[table], table)
    return ImportReport(counts=counts)


@dataclass
class CsvPack:
    tables: Dict[str, bytes]

    def to_zip_bytes(self) -> bytes:
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as z:
            for table, blob in self.tables.items():
                z.writestr(f"{table}.csv", blob)
        return buf.getvalue()


def build_csv_pack(doc: Mapping[str, List[dict]]) -> CsvPack:
    csv_kwargs = {"index": False}
    return CsvPack(
        tables={
            table: pd.DataFrame(doc.get(table) or []).to_csv(**csv_kwargs).encode()
            for table in TABLES
        }
    )


def csv_pack(dl: DataLayer) -> tuple[bytes, int]:
    blob = build_csv_pack(export_bundle(dl)).to_zip_bytes()
    return blob, len(blob)
