"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="FLEET_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Grain Fleet Tracker API"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO", description="Root logging level applied by create_app.")
    geofences_file: Path = Field(
        default=Path("data/city_geofences.xlsx"),
        description="Workbook used to seed city/warehouse geofences when storage has none.",
    )

    speed_min_interval_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="Fixes closer together than this keep the previously stored speed.",
    )
    speed_cap_kmh: int = Field(default=200, ge=1, description="Upper bound for estimated truck speed.")
    max_update_attempts: int = Field(
        default=3,
        ge=1,
        description="Compare-and-set attempts when concurrent fixes race on the same truck.",
    )
    max_future_fix_seconds: float = Field(
        default=300.0,
        ge=0.0,
        description="Device timestamps further ahead of server time than this are replaced by the receive time.",
    )

    city_contacts: dict[str, str] = Field(
        default_factory=lambda: {
            "Laayoune": "212600000001",
            "Dakhla": "212600000002",
            "Smara": "212600000003",
            "Guelmim": "212600000004",
        },
        description="Destination name -> phone number receiving first-arrival notifications.",
    )
    whatsapp_api_url: Optional[str] = Field(
        default=None,
        description="WhatsApp Cloud API messages endpoint (e.g., https://graph.facebook.com/v19.0/<id>/messages).",
    )
    whatsapp_api_token: Optional[str] = Field(default=None, description="Bearer token for the WhatsApp API.")
    whatsapp_timeout_seconds: float = Field(default=10.0, gt=0.0)
    notification_workers: int = Field(default=4, ge=1)

    tracking_link_base_url: str = Field(
        default="http://localhost:8080",
        description="Public URL of the browser tracking page; tokens are appended as /track/<token>.",
    )
    tracking_token_bytes: int = Field(default=32, ge=16)
    invitation_code_ttl_hours: int = Field(default=24, ge=1)

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:8080",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

    @field_validator("geofences_file", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()

    @field_validator("city_contacts", mode="before")
    @classmethod
    def _parse_contacts(cls, value: Any) -> dict[str, str]:
        """Accept a mapping, a JSON object, or ``City=phone`` pairs separated by commas."""
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(city).strip(): str(phone).strip() for city, phone in value.items()}
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, dict):
                    return {str(city).strip(): str(phone).strip() for city, phone in parsed.items()}
            except (json.JSONDecodeError, TypeError):
                pass
            contacts: dict[str, str] = {}
            for item in value.split(","):
                if "=" not in item:
                    continue
                city, phone = item.split("=", 1)
                if city.strip() and phone.strip():
                    contacts[city.strip()] = phone.strip()
            return contacts
        raise ValueError("city_contacts must be a mapping of destination to phone number")


settings = Settings()
