from __future__ import annotations

import io
import json
import logging
import sys
from functools import lru_cache

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from sbt_admin import __version__, core
from sbt_admin.config import KeyStore, get_credential, get_settings
from sbt_admin.errors import (
    AuthenticationError,
    ConfigurationError,
    NotFoundError,
    OperationError,
    ValidationError,
)
from sbt_admin.models import (
    Area,
    AreaIn,
    Calculation,
    CalculationIn,
    Customer,
    CustomerAddress,
    CustomerIn,
    Invoice,
    Lookup,
    LookupIn,
)
from sbt_admin.services import bundle, projection
from sbt_admin.services.data_layer import DataLayer, build_data_layer

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="SBT Transport admin backend",
    version=__version__,
    description="Customers, areas, calculations, lookup data and invoices",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache
def get_data_layer() -> DataLayer:
    return build_data_layer(settings.supabase_url, get_credential())


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(ConfigurationError)
def configuration_error(request: Request, exc: ConfigurationError):
    return _error(503, exc)


@app.exception_handler(AuthenticationError)
def authentication_error(request: Request, exc: AuthenticationError):
    return _error(401, exc)


@app.exception_handler(NotFoundError)
def not_found_error(request: Request, exc: NotFoundError):
    return _error(404, exc)


@app.exception_handler(ValidationError)
def validation_error(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc), "problems": exc.problems})


@app.exception_handler(OperationError)
def operation_error(request: Request, exc: OperationError):
    return JSONResponse(
        status_code=502,
        content={"detail": exc.message, "operation": exc.operation},
    )


@app.get("/healthz")
def healthcheck(dl: DataLayer = Depends(get_data_layer)):
    return {"status": "ok", "key_configured": dl.configured}


@app.get("/dashboard")
def dashboard(dl: DataLayer = Depends(get_data_layer)):
    return core.get_kpis(dl, prefix=settings.memo_prefix, seed=settings.memo_seed)


# Invoices

@app.get("/invoices", response_model=list[Invoice])
def list_invoices(dl: DataLayer = Depends(get_data_layer)):
    return dl.invoices.list()


@app.get("/invoices/next-memo")
def next_memo(dl: DataLayer = Depends(get_data_layer)):
    memo_no = dl.invoices.next_memo_number(prefix=settings.memo_prefix, seed=settings.memo_seed)
    return {"trips_memo_no": memo_no}


@app.get("/invoices/{memo_no}", response_model=Invoice)
def get_invoice(memo_no: str, dl: DataLayer = Depends(get_data_layer)):
    invoice = dl.invoices.search_by_memo(memo_no)
    if invoice is None:
        raise NotFoundError(f"Invoice {memo_no} not found")
    return invoice


@app.put("/invoices")
def save_invoice(invoice: Invoice, dl: DataLayer = Depends(get_data_layer)):
    return {"trips_memo_no": dl.invoices.save(invoice)}


@app.delete("/invoices/{memo_no}")
def delete_invoice(memo_no: str, dl: DataLayer = Depends(get_data_layer)):
    dl.invoices.delete(memo_no)
    return {"status": "ok"}


# Customers

@app.get("/customers", response_model=list[Customer])
def list_customers(dl: DataLayer = Depends(get_data_layer)):
    return dl.customers.list()


@app.get("/customers/addresses", response_model=list[CustomerAddress])
def customer_addresses(name: str, dl: DataLayer = Depends(get_data_layer)):
    return dl.customers.addresses_for(name)


@app.post("/customers")
def create_customer(customer: CustomerIn, dl: DataLayer = Depends(get_data_layer)):
    return {"id": dl.customers.create(customer)}


@app.put("/customers/{customer_id}")
def update_customer(customer_id: int, customer: CustomerIn, dl: DataLayer = Depends(get_data_layer)):
    record = Customer.model_validate({**customer.model_dump(), "id": customer_id})
    return {"id": dl.customers.update(record)}


@app.delete("/customers/{customer_id}")
def delete_customer(customer_id: int, dl: DataLayer = Depends(get_data_layer)):
    dl.customers.delete(customer_id)
    return {"status": "ok"}


# Areas

@app.get("/areas", response_model=list[Area])
def list_areas(dl: DataLayer = Depends(get_data_layer)):
    return dl.areas.list()


@app.post("/areas")
def create_area(area: AreaIn, dl: DataLayer = Depends(get_data_layer)):
    return {"id": dl.areas.create(area)}


@app.put("/areas/{area_id}")
def update_area(area_id: int, area: AreaIn, dl: DataLayer = Depends(get_data_layer)):
    return {"id": dl.areas.update(Area.model_validate({**area.model_dump(), "id": area_id}))}


@app.delete("/areas/{area_id}")
def delete_area(area_id: int, dl: DataLayer = Depends(get_data_layer)):
    dl.areas.delete(area_id)
    return {"status": "ok"}


# Calculations

@app.get("/calculations", response_model=list[Calculation])
def list_calculations(dl: DataLayer = Depends(get_data_layer)):
    return dl.calculations.list()


@app.post("/calculations")
def create_calculation(record: CalculationIn, dl: DataLayer = Depends(get_data_layer)):
    return {"id": dl.calculations.create(record)}


@app.put("/calculations/{calculation_id}")
def update_calculation(calculation_id: int, record: CalculationIn, dl: DataLayer = Depends(get_data_layer)):
    return {"id": dl.calculations.update(Calculation.model_validate({**record.model_dump(), "id": calculation_id}))}


@app.delete("/calculations/{calculation_id}")
def delete_calculation(calculation_id: int, dl: DataLayer = Depends(get_data_layer)):
    dl.calculations.delete(calculation_id)
    return {"status": "ok"}


# Lookup

@app.get("/lookup", response_model=list[Lookup])
def list_lookup(dl: DataLayer = Depends(get_data_layer)):
    return dl.lookup.list()


@app.post("/lookup")
def create_lookup(record: LookupIn, dl: DataLayer = Depends(get_data_layer)):
    return {"id": dl.lookup.create(record)}


@app.put("/lookup/{lookup_id}")
def update_lookup(lookup_id: int, record: LookupIn, dl: DataLayer = Depends(get_data_layer)):
    return {"id": dl.lookup.update(Lookup.model_validate({**record.model_dump(), "id": lookup_id}))}


@app.delete("/lookup/{lookup_id}")
def delete_lookup(lookup_id: int, dl: DataLayer = Depends(get_data_layer)):
    dl.lookup.delete(lookup_id)
    return {"status": "ok"}


# Services price list

def _services(dl: DataLayer) -> list[projection.ServiceRow]:
    return projection.build_services(
        dl.areas.list(), dl.calculations.list(), settings.projection_rules()
    )


@app.get("/services")
def list_services(dl: DataLayer = Depends(get_data_layer)):
    rows = _services(dl)
    return {"columns": projection.SERVICE_COLUMNS, "rows": [row.__dict__ for row in rows]}


@app.get("/services.csv")
def download_services(dl: DataLayer = Depends(get_data_layer)):
    df = projection.services_frame(_services(dl))
    return StreamingResponse(
        io.BytesIO(df.to_csv(index=False).encode()),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="services.csv"'},
    )


# Import / export

@app.get("/data/export")
def export_db(dl: DataLayer = Depends(get_data_layer)):
    return bundle.export_bundle(dl)


@app.get("/data/export.zip")
def download_export_pack(dl: DataLayer = Depends(get_data_layer)):
    blob, size = bundle.csv_pack(dl)
    headers = {
        "Content-Disposition": 'attachment; filename="sbt_transport_db.zip"',
        "Content-Length": str(size),
    }
    return StreamingResponse(
        io.BytesIO(blob),
        media_type="application/zip",
        headers=headers,
    )


@app.post("/data/import")
def import_db(doc: dict, dl: DataLayer = Depends(get_data_layer)):
    report = bundle.import_bundle(dl, doc)
    return {"status": "ok", "counts": report.counts, "total": report.total}


@app.post("/data/import/file")
async def import_db_file(file: UploadFile = File(...), dl: DataLayer = Depends(get_data_layer)):
    content = await file.read()
    try:
        doc = json.loads(content)
    except ValueError as exc:
        raise ValidationError([f"file is not valid JSON: {exc}"]) from exc
    report = bundle.import_bundle(dl, doc)
    return {"status": "ok", "counts": report.counts, "total": report.total}


# Settings

class KeyRequest(BaseModel):
    key: str


@app.post("/settings/key")
def save_key(payload: KeyRequest):
    if not payload.key.strip():
        raise HTTPException(status_code=400, detail="Key must not be empty")
    KeyStore(settings.credential_store).save(payload.key.strip())
    logger.info("Saved Supabase key to %s", settings.credential_store)
    return {"status": "ok", "restart_required": True}
