from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    app_version: str = "2026-10-17.v1"
    database_url: str = "sqlite:///./scheduling.db"

    # ---- Logging ----
    log_level: str = "INFO"
    sql_log_level: str = "WARNING"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]

    # ---- Auth ----
    auth_mode: str = "dev"  # dev|jwt
    jwt_secret: str = "dev-change-me"
    jwt_algorithm: str = "HS256"

    # Dev header names
    dev_header_user_id: str = "X-User-Id"
    dev_header_user_role: str = "X-User-Role"
    dev_header_work_order_id: str = "X-Work-Order-Id"

    # ---- Scheduling rules ----
    slot_count: int = 3
    slot_min_minutes: int = 15
    slot_granularity_minutes: int = 15
    default_job_duration_minutes: int = 60
    require_tenant_access_approval: bool = True

    # Expiry is a separate sweep; None disables it.
    proposal_expiry_hours: int | None = None
    counter_proposal_expiry_hours: int | None = None
    expiry_sweep_interval_seconds: int = 15 * 60

    # ---- Notifications ----
    notification_backend: str = "log"  # log|celery

    # ---- Celery ----
    celery_broker_url: str | None = None
    celery_result_backend: str | None = None

    def model_post_init(self, __context) -> None:
        env = (self.app_env or "local").strip().lower()
        is_prod = env in ("prod", "production")

        if self.slot_granularity_minutes <= 0:
            raise ValueError("slot_granularity_minutes must be positive")
        if self.slot_min_minutes < self.slot_granularity_minutes:
            raise ValueError("slot_min_minutes cannot be below slot_granularity_minutes")

        # Hard fail: header spoofing must never reach prod
        if is_prod:
            if (self.auth_mode or "").strip().lower() == "dev":
                raise ValueError("SECURITY: auth_mode=dev is not allowed in prod")
            if self.jwt_secret == "dev-change-me":
                raise ValueError("SECURITY: jwt_secret must be set in prod")

            origins = self.cors_allow_origins
            if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
                raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")


settings = Settings()
