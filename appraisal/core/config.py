import os
from pydantic import BaseModel, ConfigDict

from ..schemas import Strategy

class Settings(BaseModel):
    # Env-derived defaults are validated as well
    model_config = ConfigDict(validate_default=True)

    # Basic
    ENV: str = os.getenv("ENV", "dev")
    DEFAULT_CURRENCY: str = os.getenv("CURRENCY", "ILS")
    RUN_TTL_SECONDS: int = int(os.getenv("RUN_TTL_SECONDS", "43200"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Engine policy (defaults preserve current behavior)
    DEFAULT_TOP_K: int = int(os.getenv("DEFAULT_TOP_K", "25"))
    MAX_TOP_K: int = int(os.getenv("MAX_TOP_K", "100"))
    DEFAULT_STRATEGY: Strategy = os.getenv("DEFAULT_STRATEGY", "weighted-mean")
    OUTLIER_MIN_ITEMS: int = int(os.getenv("OUTLIER_MIN_ITEMS", "4"))
    IQR_MULTIPLIER: float = float(os.getenv("IQR_MULTIPLIER", "1.5"))

    # Comparable pool provider
    COMPS_PROVIDER: str = os.getenv("COMPS_PROVIDER", "mock")      # mock | http
    COMPS_BASE_URL: str | None = os.getenv("COMPS_BASE_URL")
    COMPS_RADIUS_METERS: float = float(os.getenv("COMPS_RADIUS_METERS", "2000"))
    COMPS_POOL_SIZE: int = int(os.getenv("COMPS_POOL_SIZE", "40"))

    # Audit
    AUDIT_PAGE_SIZE: int = int(os.getenv("AUDIT_PAGE_SIZE", "500"))

    # CORS
    ALLOW_ORIGINS: str = os.getenv("ALLOW_ORIGINS", "*")

    # Run store
    USE_REDIS: bool = os.getenv("USE_REDIS", "false").lower() == "true"
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # Metrics
    PROMETHEUS_ENABLED: bool = os.getenv("PROMETHEUS_ENABLED", "true").lower() == "true"

settings = Settings()
