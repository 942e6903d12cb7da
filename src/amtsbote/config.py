"""
amtsbote.config
~~~~~~~~~~~~~~~
Central configuration for the amtsbote library.

All values have sensible defaults that point at the production portals.
Override any field via a ``.env`` file or environment variables, which
pydantic-settings picks up automatically.

Usage::

    from amtsbote.config import cfg

    print(cfg.fonws_base_url)           # "https://finanzonline.bmf.gv.at/fonws/ws"
    print(cfg.get_transport_config())   # typed TransportConfig dataclass
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------------------------------------------------------------------------
# Typed return value for transport configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransportConfig:
    """Immutable snapshot of the SOAP transport settings."""

    base_url:      str
    timeout:       float
    max_retries:   int
    retry_backoff: float


# ---------------------------------------------------------------------------
# Main settings class
# ---------------------------------------------------------------------------

class Config(BaseSettings):
    """
    Runtime configuration for amtsbote.

    Reads from (in priority order):
      1. Environment variables (prefixed with ``AMTSBOTE_``)
      2. A ``.env`` file in the working directory
      3. The defaults defined below
    """

    model_config = SettingsConfigDict(
        env_prefix="AMTSBOTE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # FinanzOnline
    # ------------------------------------------------------------------

    fonws_base_url: str = Field(
        default="https://finanzonline.bmf.gv.at/fonws/ws",
        description="Base URL of the FinanzOnline webservices.",
    )

    # ------------------------------------------------------------------
    # ELDA
    # ------------------------------------------------------------------

    elda_endpoint: str = Field(
        default="https://elda.sozvers.at/elda-webservice/",
        description="Production ELDA webservice endpoint.",
    )
    elda_test_endpoint: str = Field(
        default="https://elda-test.sozvers.at/elda-webservice/",
        description="ELDA test endpoint, used when elda_test_mode is set.",
    )
    elda_test_mode: bool = Field(
        default=False,
        description="Send ELDA declarations to the test endpoint.",
    )
    elda_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Per-attempt ELDA request timeout in seconds.",
    )

    # ------------------------------------------------------------------
    # Firmenbuch
    # ------------------------------------------------------------------

    firmenbuch_endpoint: str = Field(
        default="https://www.justiz.gv.at/firmenbuch/ws/abfrage",
        description="Companies-register query endpoint.",
    )
    firmenbuch_test_endpoint: str = Field(
        default="https://test.justiz.gv.at/firmenbuch/ws/abfrage",
        description="Companies-register test endpoint.",
    )

    # ------------------------------------------------------------------
    # HTTP / retry
    # ------------------------------------------------------------------

    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries after the first attempt for transient failures.",
    )
    retry_backoff: float = Field(
        default=1.0,
        ge=0.0,
        description="Base backoff in seconds; attempt n waits base * 2**(n-1).",
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Per-attempt HTTP request timeout in seconds.",
    )

    # ------------------------------------------------------------------
    # Local state
    # ------------------------------------------------------------------

    home_dir: Path = Field(
        default=Path.home() / ".fo",
        description="Directory holding credentials, watchlist and the local DB.",
    )

    # ------------------------------------------------------------------
    # Concurrency
    # ------------------------------------------------------------------

    dashboard_workers: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Maximum number of accounts polled in parallel.",
    )
    watchlist_workers: int = Field(
        default=3,
        ge=1,
        le=16,
        description="Maximum concurrent companies-register fetches.",
    )

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator(
        "fonws_base_url", "elda_endpoint", "elda_test_endpoint",
        "firmenbuch_endpoint", "firmenbuch_test_endpoint",
    )
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("home_dir")
    @classmethod
    def _expand_home(cls, v: Path) -> Path:
        return Path(v).expanduser()

    @model_validator(mode="after")
    def _warn_on_long_backoff(self) -> "Config":
        worst = self.retry_backoff * (2 ** self.max_retries)
        if worst > 60:
            warnings.warn(
                f"retry_backoff={self.retry_backoff} with max_retries={self.max_retries} "
                f"can sleep up to {worst:.0f}s before the last attempt.",
                UserWarning,
                stacklevel=2,
            )
        return self

    # ------------------------------------------------------------------
    # Derived paths
    # ------------------------------------------------------------------

    @property
    def credentials_path(self) -> Path:
        return self.home_dir / "credentials.enc"

    @property
    def watchlist_path(self) -> Path:
        return self.home_dir / "fb-watchlist.json"

    @property
    def db_path(self) -> Path:
        return self.home_dir / "amtsbote.db"

    @property
    def download_dir(self) -> Path:
        return self.home_dir / "downloads"

    @property
    def active_elda_endpoint(self) -> str:
        return self.elda_test_endpoint if self.elda_test_mode else self.elda_endpoint

    # ------------------------------------------------------------------
    # Helper methods
    # ------------------------------------------------------------------

    def get_transport_config(self) -> TransportConfig:
        """Return an immutable, typed snapshot of the transport configuration."""
        return TransportConfig(
            base_url=self.fonws_base_url,
            timeout=self.request_timeout,
            max_retries=self.max_retries,
            retry_backoff=self.retry_backoff,
        )


# ---------------------------------------------------------------------------
# Module-level singleton, import this everywhere
# ---------------------------------------------------------------------------

cfg = Config()

__all__ = ["Config", "TransportConfig", "cfg"]
