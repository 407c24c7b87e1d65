from functools import lru_cache
from pathlib import Path
from typing import Callable, Optional, Sequence
import json
import logging
import os

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator, ConfigDict

from sbt_admin.services.projection import BrandRule, ProjectionRules

logger = logging.getLogger(__name__)

STORAGE_KEY = "sbt_transport_supabase_key"
ENV_KEY_NAMES = ("SUPABASE_KEY", "SUPABASE_ANON_KEY")


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SBT_",
    )

    # Backend
    supabase_url: str = Field(
        default="http://localhost:54321",
        description="Base URL of the Supabase project; /rest/v1 is appended.",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Embedded access key. Wins over the environment and the key store.",
    )
    credential_store: Path = Field(
        default=Path.home() / ".sbt_admin" / "credentials.json",
        description="JSON file holding a key saved from the console.",
    )

    # Invoices
    memo_prefix: str = Field(default="SBT", description="Prefix of generated memo numbers")
    memo_seed: str = Field(default="SBT-001", description="Memo number used when no invoice exists")

    # Services price list
    vehicle_types: str | list[str] = Field(
        default="Sedan,SUV,Innova Crysta,Tempo Traveller",
    )
    brands: str | list[str] = Field(default="Transport,VIKING")
    driver_bata_waived_brands: str | list[str] = Field(
        default="VIKING",
        description="Brands whose driver bata is forced to 0 outside the exempt areas",
    )
    driver_bata_exempt_areas: str | list[str] = Field(default="Chennai")

    # Frontend origins - can be comma-separated string or list
    allowed_origins: str | list[str] = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    log_level: str = Field(default="INFO")

    @field_validator(
        "allowed_origins",
        "vehicle_types",
        "brands",
        "driver_bata_waived_brands",
        "driver_bata_exempt_areas",
        mode="before",
    )
    @classmethod
    def parse_list(cls, v):
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    def projection_rules(self) -> ProjectionRules:
        waived = set(self.driver_bata_waived_brands)
        return ProjectionRules(
            vehicle_types=tuple(self.vehicle_types),
            brands=tuple(
                BrandRule(
                    name=brand,
                    waive_driver_bata=brand in waived,
                    exempt_areas=frozenset(self.driver_bata_exempt_areas),
                )
                for brand in self.brands
            ),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()


class KeyStore:
    """
    Locally persisted access key.

    A single JSON object on disk, the key lives under STORAGE_KEY.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Optional[str]:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable key store %s: %s", self.path, exc)
            return None
        value = data.get(STORAGE_KEY) if isinstance(data, dict) else None
        return value or None

    def save(self, key: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {}
        if self.path.exists():
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
            except json.JSONDecodeError:
                data = {}
        if not isinstance(data, dict):
            data = {}
        data[STORAGE_KEY] = key
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")


CredentialProvider = Callable[[], Optional[str]]


def embedded_provider(settings: Settings) -> CredentialProvider:
    return lambda: settings.supabase_key


def environment_provider(names: Sequence[str] = ENV_KEY_NAMES, environ=None) -> CredentialProvider:
    def provide() -> Optional[str]:
        env = os.environ if environ is None else environ
        for name in names:
            if env.get(name):
                return env[name]
        return None

    return provide


def key_store_provider(store: KeyStore) -> CredentialProvider:
    return store.load


def resolve_credential(providers: Sequence[CredentialProvider]) -> Optional[str]:
    """First non-empty value wins."""
    for provider in providers:
        value = provider()
        if value and value.strip():
            return value.strip()
    return None


def default_providers(settings: Settings) -> list[CredentialProvider]:
    return [
        embedded_provider(settings),
        environment_provider(),
        key_store_provider(KeyStore(settings.credential_store)),
    ]


@lru_cache
def get_credential() -> Optional[str]:
    # Resolved once per process; saving a new key takes effect after a restart.
    credential = resolve_credential(default_providers(get_settings()))
    if credential is None:
        logger.warning("No Supabase key configured; reads return empty results and writes fail.")
    return credential
