from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Optional
from pathlib import Path

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Load env from backend/.env regardless of CWD
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    app_name: str = Field(default="TicketGate API", alias="APP_NAME")
    env: str = Field(default="dev", alias="ENV")
    secret_key: str = Field(default="devsecret", alias="SECRET_KEY")
    algorithm: str = Field(default="HS256", alias="ALGORITHM")
    access_token_expire_minutes: int = Field(default=60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")
    database_url: str | None = Field(default=None, alias="DATABASE_URL")
    auto_apply_migrations: bool = Field(default=True, alias="AUTO_APPLY_MIGRATIONS")
    # Separate from secret_key so rotating operator tokens never invalidates printed tickets
    qr_signing_secret: str = Field(default="dev-qr-secret", alias="QR_SIGNING_SECRET")
    lottery_lock_ttl_seconds: int = Field(default=300, ge=1, alias="LOTTERY_LOCK_TTL_SECONDS")
    lock_sweep_interval_seconds: int = Field(default=60, ge=1, alias="LOCK_SWEEP_INTERVAL_SECONDS")
    require_signed_scans: bool = Field(default=False, alias="REQUIRE_SIGNED_SCANS")
    availability_rate_limit: int = Field(default=30, ge=1, alias="AVAILABILITY_RATE_LIMIT")
    availability_rate_window_seconds: int = Field(default=60, ge=1, alias="AVAILABILITY_RATE_WINDOW_SECONDS")
    order_rate_limit: int = Field(default=5, ge=1, alias="ORDER_RATE_LIMIT")
    order_rate_window_seconds: int = Field(default=60, ge=1, alias="ORDER_RATE_WINDOW_SECONDS")
    # Raw env values (strings), we parse them to lists via properties to avoid JSON decoding errors
    admin_emails_raw: Optional[str] = Field(default=None, alias="ADMIN_EMAILS")
    cors_origins_raw: Optional[str] = Field(default=None, alias="CORS_ORIGINS", description="Comma or space separated list of allowed CORS origins")
    # Dev seed data
    lottery_ticket_count: int = Field(default=50, ge=0, alias="LOTTERY_TICKET_COUNT")
    concert_tiers_raw: Optional[str] = Field(default=None, alias="CONCERT_TIERS", description="tier:price:total entries, comma separated")

    def _parse_list(self, v: Optional[str]) -> List[str]:
        if v is None:
            return []
        s = v.strip()
        if not s:
            return []
        if s.startswith("[") and s.endswith("]"):
            try:
                import json
                loaded = json.loads(s)
                if isinstance(loaded, list):
                    return [str(e).strip() for e in loaded if str(e).strip()]
            except ValueError:
                pass
        return [e.strip() for e in s.split(",") if e.strip()]

    @property
    def admin_emails(self) -> List[str]:
        return [e.lower() for e in self._parse_list(self.admin_emails_raw)]

    @property
    def concert_tiers(self) -> List[tuple[str, float, int]]:
        """Seed tiers as (tier, price, total). Malformed entries are skipped."""
        items = self._parse_list(self.concert_tiers_raw)
        if not items:
            return [("diamond", 1000.0, 100), ("gold", 500.0, 200), ("silver", 250.0, 300)]
        tiers = []
        for item in items:
            parts = item.split(":")
            if len(parts) != 3:
                continue
            try:
                tiers.append((parts[0].strip().lower(), float(parts[1]), int(parts[2])))
            except ValueError:
                continue
        return tiers

    @property
    def cors_origins(self) -> List[str]:
        items = self._parse_list(self.cors_origins_raw)
        # Fallback dev defaults if none provided
        if not items:
            return ["http://localhost:3000", "http://127.0.0.1:3000"]
        # Dev convenience: ensure both localhost and 127.0.0.1 variants for same ports
        augmented = set(items)
        for origin in list(items):
            if origin.startswith("http://localhost:"):
                port = origin.rsplit(":", 1)[1]
                augmented.add(f"http://127.0.0.1:{port}")
            if origin.startswith("http://127.0.0.1:"):
                port = origin.rsplit(":", 1)[1]
                augmented.add(f"http://localhost:{port}")
        return list(augmented)

settings = Settings()  # type: ignore
