from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional, Union

import httpx
from pydantic import BaseModel

from sbt_admin.errors import (
    AuthenticationError,
    ConfigurationError,
    OperationError,
    TableNotProvisioned,
)
from sbt_admin.models import (
    Area,
    Calculation,
    Customer,
    CustomerAddress,
    Invoice,
    Lookup,
)
from sbt_admin.services import memo

logger = logging.getLogger(__name__)

# Postgres undefined_table, and PostgREST's schema-cache miss for unknown tables.
MISSING_TABLE_CODES = {"42P01", "PGRST205"}
JWT_REJECTED_CODE = "PGRST301"

TABLES = ("invoices", "customers", "areas", "calculations", "lookup")

Record = Union[BaseModel, Mapping[str, Any]]


def _as_row(record: Record) -> dict[str, Any]:
    if isinstance(record, BaseModel):
        return record.model_dump()
    return dict(record)


class RestClient:
    """Thin PostgREST client: one HTTP round trip per call, no retries."""

    def __init__(
        self,
        base_url: str,
        key: Optional[str],
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.key = key or None
        headers = {}
        if self.key:
            headers = {"apikey": self.key, "Authorization": f"Bearer {self.key}"}
        self.http = httpx.Client(
            base_url=base_url.rstrip("/") + "/rest/v1",
            headers=headers,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return self.key is not None

    def require_key(self, operation: str) -> None:
        if not self.configured:
            logger.error("Refusing %s: no Supabase key configured", operation)
            raise ConfigurationError()

    def request(
        self,
        operation: str,
        method: str,
        table: str,
        *,
        params: Optional[Mapping[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = self.http.request(
                method, f"/{table}", params=params, json=json, headers=headers
            )
        except httpx.HTTPError as exc:
            logger.error("Error in %s: %s", operation, exc)
            raise OperationError(operation, str(exc)) from exc

        if response.is_error:
            raise self._translate(operation, table, response)
        if not response.content:
            return None
        return response.json()

    def _translate(self, operation: str, table: str, response: httpx.Response) -> Exception:
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = {}
        code = str(body.get("code") or "")
        message = body.get("message") or response.text or f"HTTP {response.status_code}"

        if code in MISSING_TABLE_CODES:
            return TableNotProvisioned(operation, table)
        logger.error("Error in %s: [%s] %s", operation, code or response.status_code, message)
        if response.status_code == 401 or code == JWT_REJECTED_CODE or "JWT" in message:
            return AuthenticationError()
        return OperationError(operation, message)

    def close(self) -> None:
        self.http.close()


class TableRepository:
    """CRUD against one table keyed by the surrogate ``id``."""

    table: str = ""
    entity: str = ""
    model: type[BaseModel] = BaseModel

    def __init__(self, client: RestClient):
        self.client = client

    def _read(self, operation: str, params: Mapping[str, str]) -> list[dict[str, Any]]:
        if not self.client.configured:
            logger.warning("Skipping %s: no Supabase key configured", operation)
            return []
        try:
            data = self.client.request(operation, "GET", self.table, params=params)
        except TableNotProvisioned:
            logger.warning("Table '%s' not found. Returning empty list.", self.table)
            return []
        return data or []

    def rows(self) -> list[dict[str, Any]]:
        """Rows exactly as stored."""
        return self._read(f"list_{self.table}", {"select": "*"})

    def list(self):
        return [self.model.model_validate(row) for row in self.rows()]

    def create(self, record: Record) -> int:
        operation = f"create_{self.entity}"
        self.client.require_key(operation)
        row = _as_row(record)
        row.pop("id", None)
        data = self.client.request(
            operation,
            "POST",
            self.table,
            params={"select": "id"},
            json=row,
            prefer="return=representation",
        )
        return self._returned_id(operation, data)

    def update(self, record: Record) -> int:
        operation = f"update_{self.entity}"
        self.client.require_key(operation)
        row = _as_row(record)
        if row.get("id") is None:
            raise OperationError(operation, "record has no id")
        data = self.client.request(
            operation,
            "PATCH",
            self.table,
            params={"id": f"eq.{row['id']}", "select": "id"},
            json=row,
            prefer="return=representation",
        )
        return self._returned_id(operation, data)

    def delete(self, id: int) -> None:
        operation = f"delete_{self.entity}"
        self.client.require_key(operation)
        self.client.request(operation, "DELETE", self.table, params={"id": f"eq.{id}"})

    @staticmethod
    def _returned_id(operation: str, data: Any) -> int:
        if not data:
            raise OperationError(operation, "no row returned")
        return data[0]["id"]


class CustomerRepository(TableRepository):
    table = "customers"
    entity = "customer"
    model = Customer

    def addresses_for(self, name: str) -> list[CustomerAddress]:
        rows = self._read(
            "customer_addresses",
            {
                "select": "customers_address1,customers_address2",
                "customers_name": f"ilike.*{name}*",
            },
        )
        return [
            CustomerAddress(
                address1=row.get("customers_address1"),
                address2=row.get("customers_address2"),
            )
            for row in rows
        ]


class AreaRepository(TableRepository):
    table = "areas"
    entity = "area"
    model = Area


class CalculationRepository(TableRepository):
    table = "calculations"
    entity = "calculation"
    model = Calculation


class LookupRepository(TableRepository):
    table = "lookup"
    entity = "lookup"
    model = Lookup


class InvoiceRepository(TableRepository):
    """
    Invoices are keyed by ``trips_memo_no``; create and update are both an
    upsert on that column.
    """

    table = "invoices"
    entity = "invoice"
    model = Invoice
    key = "trips_memo_no"

    def save(self, record: Record) -> str:
        operation = "save_invoice"
        self.client.require_key(operation)
        row = _as_row(record)
        if not row.get(self.key):
            raise OperationError(operation, f"invoice has no {self.key}")
        self.client.request(
            operation,
            "POST",
            self.table,
            params={"on_conflict": self.key},
            json=row,
            prefer="resolution=merge-duplicates,return=minimal",
        )
        return row[self.key]

    def create(self, record: Record) -> str:
        return self.save(record)

    def update(self, record: Record) -> str:
        return self.save(record)

    def delete(self, memo_no: str) -> None:
        operation = "delete_invoice"
        self.client.require_key(operation)
        self.client.request(
            operation, "DELETE", self.table, params={self.key: f"eq.{memo_no}"}
        )

    def search_by_memo(self, memo_no: str) -> Optional[Invoice]:
        rows = self._read(
            "search_invoice_by_memo_no",
            {"select": "*", self.key: f"eq.{memo_no}", "limit": "1"},
        )
        if not rows:
            return None
        return Invoice.model_validate(rows[0])

    def next_memo_number(self, prefix: str = memo.DEFAULT_PREFIX, seed: str = memo.SEED) -> str:
        rows = self._read("generate_new_memo_number", {"select": self.key})
        return memo.next_memo_number((row.get(self.key) for row in rows), prefix=prefix, seed=seed)


class DataLayer:
    def __init__(self, client: RestClient):
        self.client = client
        self.invoices = InvoiceRepository(client)
        self.customers = CustomerRepository(client)
        self.areas = AreaRepository(client)
        self.calculations = CalculationRepository(client)
        self.lookup = LookupRepository(client)

    @property
    def configured(self) -> bool:
        return self.client.configured

    def repository(self, table: str) -> TableRepository:
        if table not in TABLES:
            raise KeyError(table)
        return getattr(self, table)

    def upsert(self, table: str, rows: Iterable[Mapping[str, Any]], on_conflict: Optional[str] = None) -> int:
        """
        Bulk insert-or-update. Rows without the conflict column get the
        column default, so rows lacking an id are inserted fresh.
        """
        operation = f"import_{table}"
        self.client.require_key(operation)
        payload = [dict(row) for row in rows]
        if not payload:
            return 0
        # Column list is the union of keys; rows lacking a column take its default.
        params = {"columns": ",".join(sorted({k for row in payload for k in row}))}
        if on_conflict:
            params["on_conflict"] = on_conflict
        self.client.request(
            operation,
            "POST",
            table,
            params=params,
            json=payload,
            prefer="resolution=merge-duplicates,missing=default,return=minimal",
        )
        return len(payload)

    def close(self) -> None:
        self.client.close()


def build_data_layer(
    supabase_url: str,
    key: Optional[str],
    transport: Optional[httpx.BaseTransport] = None,
) -> DataLayer:
    return DataLayer(RestClient(supabase_url, key, transport=transport))
