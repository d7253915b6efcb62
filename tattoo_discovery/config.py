"""Process-level configuration for the generation service.

Architectural role:
    Centralizes provider credentials, pipeline bounds, entitlement policy and
    payment settings. Values are resolved once (`load_settings`) and passed
    explicitly to the provider adapters, the ledger and the HTTP layer, so no
    adapter re-reads the environment during an attempt.

Credential lookup:
    `load_key` resolves a secret from its environment variable first and falls
    back to a `config/<name>.key` file. A provider counts as configured only
    when every value it requires resolves to a non-empty string.

Determinism:
    Deterministic for a fixed process environment and key files. `.env` is
    loaded at import time via `load_dotenv()`.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


KEY_DIR = os.getenv("KEY_DIR", "config")

# Default priority order for a deployment; overridable with IMAGE_PROVIDER_ORDER.
DEFAULT_PROVIDER_ORDER = ("replicate", "vertex", "gemini", "huggingface")

REPLICATE_SDXL_VERSION = "39ed52f2a78e934b3ba6e2a89f5b1c712de7dfea535525255b1aa35c5565e08b"
GEMINI_IMAGE_MODEL = "gemini-2.5-flash-image"
VERTEX_IMAGEN_MODEL = "imagegeneration@006"


def load_key(env_var, key_file=None):
    """Load a secret from the environment or from a key file.

    Resolution order:
        1. Environment variable `env_var`.
        2. Stripped contents of `key_file` (defaults to
           `<KEY_DIR>/<service>.key`, where `<service>` is the first segment of
           the variable name, e.g. `REPLICATE_API_TOKEN` -> `replicate.key`).

    Returns:
        Secret string or `None` when neither source provides a value.
    """
    value = os.getenv(env_var)
    if value and value.strip():
        return value.strip()

    if key_file is None:
        service = env_var.split("_", 1)[0].lower()
        key_file = os.path.join(KEY_DIR, f"{service}.key")

    if not os.path.exists(key_file):
        return None
    with open(key_file, "r", encoding="utf-8") as f:
        content = f.read().strip()
    return content or None


def _env_int(name, default):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logging.getLogger(__name__).warning("Ignoring non-integer %s=%r", name, raw)
        return default


def _env_float(name, default):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logging.getLogger(__name__).warning("Ignoring non-numeric %s=%r", name, raw)
        return default


def _env_bool(name, default):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_order(name, default):
    raw = os.getenv(name)
    if not raw:
        return tuple(default)
    return tuple(part.strip().lower() for part in raw.split(",") if part.strip())


# =========================================================
# PROVIDER SETTINGS
# =========================================================

@dataclass(frozen=True)
class ProviderSettings:
    """Credentials and bounds for the image-generation adapters."""

    replicate_api_token: str | None = None
    replicate_model_version: str = REPLICATE_SDXL_VERSION

    google_project_id: str | None = None
    google_location: str = "us-central1"
    google_credentials_json: str | None = None
    vertex_model: str = VERTEX_IMAGEN_MODEL

    gemini_api_key: str | None = None
    gemini_image_model: str = GEMINI_IMAGE_MODEL

    huggingface_api_key: str | None = None

    provider_order: tuple = DEFAULT_PROVIDER_ORDER
    poll_interval: float = 1.0
    poll_max_attempts: int = 60
    http_timeout: float = 120.0

    def replicate_configured(self) -> bool:
        return bool(self.replicate_api_token)

    def vertex_configured(self) -> bool:
        return bool(self.google_project_id and self.google_credentials_json)

    def gemini_configured(self) -> bool:
        return bool(self.gemini_api_key)

    def huggingface_configured(self) -> bool:
        return bool(self.huggingface_api_key)

    def is_configured(self, provider_name: str) -> bool:
        check = getattr(self, f"{provider_name}_configured", None)
        return bool(check and check())

    @classmethod
    def from_env(cls) -> "ProviderSettings":
        return cls(
            replicate_api_token=load_key("REPLICATE_API_TOKEN"),
            replicate_model_version=os.getenv("REPLICATE_MODEL_VERSION", REPLICATE_SDXL_VERSION),
            google_project_id=os.getenv("GOOGLE_CLOUD_PROJECT_ID") or None,
            google_location=os.getenv("GOOGLE_CLOUD_LOCATION", "us-central1"),
            google_credentials_json=load_key(
                "GOOGLE_CLOUD_CREDENTIALS",
                key_file=os.path.join(KEY_DIR, "google-credentials.json"),
            ),
            vertex_model=os.getenv("VERTEX_IMAGEN_MODEL", VERTEX_IMAGEN_MODEL),
            gemini_api_key=load_key("GEMINI_API_KEY"),
            gemini_image_model=os.getenv("GEMINI_IMAGE_MODEL", GEMINI_IMAGE_MODEL),
            huggingface_api_key=load_key("HUGGINGFACE_API_KEY"),
            provider_order=_env_order("IMAGE_PROVIDER_ORDER", DEFAULT_PROVIDER_ORDER),
            poll_interval=_env_float("POLL_INTERVAL_SECONDS", 1.0),
            poll_max_attempts=_env_int("POLL_MAX_ATTEMPTS", 60),
            http_timeout=_env_float("HTTP_TIMEOUT_SECONDS", 120.0),
        )


# =========================================================
# APPLICATION SETTINGS
# =========================================================

@dataclass(frozen=True)
class AppSettings:
    """Everything the HTTP layer, CLI and ledger need at startup."""

    providers: ProviderSettings = field(default_factory=ProviderSettings)

    generation_timeout: float = 180.0
    generation_limit: int = 1
    require_payment: bool = True
    data_dir: str = "data"
    max_reference_image_mb: float = 10.0

    stripe_secret_key: str | None = None
    stripe_webhook_secret: str | None = None
    buy_in_amount_cents: int = 10000
    buy_in_currency: str = "eur"
    app_base_url: str = "http://localhost:3000"

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "AppSettings":
        return cls(
            providers=ProviderSettings.from_env(),
            generation_timeout=_env_float("GENERATION_TIMEOUT_SECONDS", 180.0),
            generation_limit=max(1, _env_int("GENERATION_LIMIT", 1)),
            require_payment=_env_bool("REQUIRE_PAYMENT", True),
            data_dir=os.getenv("DATA_DIR", "data"),
            max_reference_image_mb=_env_float("MAX_REFERENCE_IMAGE_MB", 10.0),
            stripe_secret_key=load_key("STRIPE_SECRET_KEY"),
            stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET") or None,
            buy_in_amount_cents=_env_int("BUY_IN_AMOUNT_CENTS", 10000),
            buy_in_currency=os.getenv("BUY_IN_CURRENCY", "eur"),
            app_base_url=os.getenv("APP_BASE_URL", "http://localhost:3000"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


def load_settings() -> AppSettings:
    """Resolve application settings from the current environment."""
    return AppSettings.from_env()


def configure_logging(level="INFO"):
    """Install a basic root handler for CLI and server entrypoints."""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
