from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, FrozenSet, Iterable, List, Sequence

import pandas as pd

WAIVED_DRIVER_BATA = "0"


@dataclass(frozen=True)
class BrandRule:
    name: str
    waive_driver_bata: bool = False
    exempt_areas: FrozenSet[str] = frozenset()

    def driver_bata(self, location_area: str, stored: Any) -> Any:
        if self.waive_driver_bata and location_area not in self.exempt_areas:
            return WAIVED_DRIVER_BATA
        return stored


@dataclass(frozen=True)
class ProjectionRules:
    vehicle_types: Sequence[str] = ("Sedan", "SUV", "Innova Crysta", "Tempo Traveller")
    brands: Sequence[BrandRule] = field(
        default_factory=lambda: (
            BrandRule("Transport"),
            BrandRule("VIKING", waive_driver_bata=True, exempt_areas=frozenset({"Chennai"})),
        )
    )


@dataclass
class ServiceRow:
    location_area: str
    location_category: str
    label: str
    product_item: str
    minimum_hours: Any
    minimum_km: Any
    minimum_charges: Any
    additional_hours_charges: Any
    running_hours: Any
    driver_bata: Any
    vehicle_type: str


SERVICE_COLUMNS = [f.name for f in fields(ServiceRow)]


def _get(record: Any, name: str) -> Any:
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def lookup_key(brand: str, vehicle_type: str, category: str) -> str:
    return f"{brand}_{vehicle_type}_{category}"


def product_item(brand: str, category: str, area: str, vehicle_type: str) -> str:
    return "_".join([brand, category, area, vehicle_type]).replace(" ", "_")


def build_services(
    areas: Iterable[Any],
    calculations: Iterable[Any],
    rules: ProjectionRules | None = None,
) -> List[ServiceRow]:
    """
    Services price list: every area x vehicle type x brand whose lookup key
    has a calculation. Combinations without one are left out.

    Areas and calculations may be models or raw rows.
    """
    rules = rules or ProjectionRules()

    by_key = {}
    for calc in calculations:
        # first row wins on duplicate keys
        by_key.setdefault(_get(calc, "products_type_category"), calc)

    services: List[ServiceRow] = []
    for area in areas:
        location = _get(area, "locationArea") or ""
        category = _get(area, "locationCategory") or ""
        for vehicle in rules.vehicle_types:
            for brand in rules.brands:
                calc = by_key.get(lookup_key(brand.name, vehicle, category))
                if calc is None:
                    continue
                services.append(
                    ServiceRow(
                        location_area=location,
                        location_category=category,
                        label=f"{brand.name} - {vehicle}",
                        product_item=product_item(brand.name, category, location, vehicle),
                        minimum_hours=_get(calc, "products_minimum_hours"),
                        minimum_km=_get(calc, "products_minimum_km"),
                        minimum_charges=_get(calc, "products_minimum_charges"),
                        additional_hours_charges=_get(calc, "products_additional_hours_charges"),
                        running_hours=_get(calc, "products_running_hours"),
                        driver_bata=brand.driver_bata(location, _get(calc, "products_driver_bata")),
                        vehicle_type=vehicle,
                    )
                )
    return services


def services_frame(services: Sequence[ServiceRow]) -> pd.DataFrame:
    if not services:
        return pd.DataFrame(columns=SERVICE_COLUMNS)
    return pd.DataFrame([s.__dict__ for s in services], columns=SERVICE_COLUMNS)
