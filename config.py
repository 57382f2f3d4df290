"""Module for configuring the LHV Connect client"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

load_dotenv()

LHV_BASE_URL = os.getenv("LHV_BASE_URL", "https://connect.prelive.lhv.eu")
LHV_CLIENT_CODE = os.getenv("LHV_CLIENT_CODE")
LHV_CLIENT_COUNTRY = os.getenv("LHV_CLIENT_COUNTRY", "EE")
LHV_CERT_PATH = os.getenv("LHV_CERT_PATH")
LHV_KEY_PATH = os.getenv("LHV_KEY_PATH")
LHV_ROOT_CA_PATH = os.getenv("LHV_ROOT_CA_PATH")
LHV_INTERFACE_IP = os.getenv("LHV_INTERFACE_IP", "")

LHV_POLL_TIMEOUT_SECONDS = float(os.getenv("LHV_POLL_TIMEOUT_SECONDS", "30"))
LHV_POLL_INTERVAL_SECONDS = float(os.getenv("LHV_POLL_INTERVAL_SECONDS", "1"))


class ConnectConfig(BaseModel):
    """
    Immutable connection settings for one LHV Connect client.

    Built once at startup (see `load_connect_config`); the transport and poller read from it but never change it.
    """

    model_config = ConfigDict(frozen=True)

    base_url: str
    client_code: str
    client_country: str = "EE"
    cert_path: Optional[str] = None
    key_path: Optional[str] = None
    root_ca_path: Optional[str] = None
    interface_ip: Optional[str] = None
    poll_timeout_seconds: float = Field(default=30.0, gt=0)
    poll_interval_seconds: float = Field(default=1.0, gt=0)

    @field_validator("base_url")
    def _strip_trailing_slash(cls, v: str) -> str:  # type: ignore[no-untyped-def]
        v = (v or "").strip()
        if not v:
            raise ValueError("base_url must be a non-empty string")
        return v.rstrip("/")

    @field_validator("client_code")
    def _require_client_code(cls, v: str) -> str:  # type: ignore[no-untyped-def]
        v = (v or "").strip()
        if not v:
            raise ValueError("client_code must be a non-empty string")
        return v

    @field_validator("interface_ip", mode="before")
    def _blank_interface_is_none(cls, v: Optional[str]) -> Optional[str]:  # type: ignore[no-untyped-def]
        if v is None:
            return None
        v = str(v).strip()
        return v or None


def load_connect_config() -> ConnectConfig:
    """Build the client configuration from the environment (and `.env`, if present)."""
    return ConnectConfig(
        base_url=LHV_BASE_URL,
        client_code=LHV_CLIENT_CODE or "",
        client_country=LHV_CLIENT_COUNTRY,
        cert_path=LHV_CERT_PATH,
        key_path=LHV_KEY_PATH,
        root_ca_path=LHV_ROOT_CA_PATH,
        interface_ip=LHV_INTERFACE_IP,
        poll_timeout_seconds=LHV_POLL_TIMEOUT_SECONDS,
        poll_interval_seconds=LHV_POLL_INTERVAL_SECONDS,
    )
