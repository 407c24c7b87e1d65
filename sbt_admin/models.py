from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

# Columns beyond the ones named here belong to the backend schema and are kept as-is.
_ROW_CONFIG = ConfigDict(extra="allow")


class CustomerIn(BaseModel):
    model_config = _ROW_CONFIG

    customers_name: Optional[str] = None
    customers_address1: Optional[str] = None
    customers_address2: Optional[str] = None


class Customer(CustomerIn):
    id: int


class CustomerAddress(BaseModel):
    address1: Optional[str] = None
    address2: Optional[str] = None


class AreaIn(BaseModel):
    model_config = _ROW_CONFIG

    locationArea: Optional[str] = None
    locationCategory: Optional[str] = None


class Area(AreaIn):
    id: int


class CalculationIn(BaseModel):
    model_config = _ROW_CONFIG

    products_type_category: Optional[str] = None
    products_minimum_hours: Any = None
    products_minimum_km: Any = None
    products_minimum_charges: Any = None
    products_additional_hours_charges: Any = None
    products_running_hours: Any = None
    products_driver_bata: Any = None


class Calculation(CalculationIn):
    id: int


class LookupIn(BaseModel):
    model_config = _ROW_CONFIG


class Lookup(LookupIn):
    id: int


class Invoice(BaseModel):
    model_config = _ROW_CONFIG

    trips_memo_no: Optional[str] = None

