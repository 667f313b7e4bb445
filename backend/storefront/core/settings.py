import os

from dotenv import load_dotenv

load_dotenv(".env")


def _getenv(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip()
    return value if value else default


def _getenv_bool(name: str, default: bool = False) -> bool:
    raw = _getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "y", "on"}


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _getenv_csv_set(name: str) -> set[str]:
    raw = _getenv(name)
    if raw is None:
        return set()
    parts = [p.strip().lower() for p in raw.split(",")]
    return {p for p in parts if p}


DUITKU_DEFAULT_IP_WHITELIST = "103.10.128.11,103.10.128.14,103.10.129.11,103.10.129.14,127.0.0.1"


class Settings:
    def __init__(self) -> None:
        self.environment = (_getenv("ENVIRONMENT", "development") or "development").lower()
        self.database_url = _getenv("DATABASE_URL", "sqlite:///./storefront.db") or "sqlite:///./storefront.db"
        self.db_auto_create = _getenv_bool("DB_AUTO_CREATE", default=True)
        self.cors_allow_origins = _getenv("CORS_ALLOW_ORIGINS")
        self.frontend_url = _getenv("FRONTEND_URL", "http://localhost:5173") or "http://localhost:5173"
        self.log_level = (_getenv("LOG_LEVEL", "INFO") or "INFO").upper()

        self.auth_jwt_secret = _getenv("AUTH_JWT_SECRET")
        self.auth_jwt_audience = _getenv("AUTH_JWT_AUDIENCE")
        self.auth_jwt_issuer = _getenv("AUTH_JWT_ISSUER")
        self.admin_emails = _getenv_csv_set("ADMIN_EMAILS")

        self.duitku_merchant_code = _getenv("DUITKU_MERCHANT_CODE")
        self.duitku_api_key = _getenv("DUITKU_API_KEY")
        self.duitku_sandbox = _getenv_bool("DUITKU_SANDBOX", default=False)
        self.duitku_callback_url = _getenv("DUITKU_CALLBACK_URL")
        self.duitku_return_url = _getenv("DUITKU_RETURN_URL") or f"{self.frontend_url}/apps/user/coin"
        self.duitku_timeout_s = float(_getenv("DUITKU_TIMEOUT_S", "30") or "30")
        self.duitku_ip_whitelist = _getenv_csv_set("DUITKU_IP_WHITELIST") or {
            ip for ip in DUITKU_DEFAULT_IP_WHITELIST.split(",")
        }

        self.coin_price = _getenv_int("COIN_PRICE", 1000)
        self.coin_max_per_payment = _getenv_int("COIN_MAX_PER_PAYMENT", 10000)
        self.payment_max_pending_per_hour = _getenv_int("PAYMENT_MAX_PENDING_PER_HOUR", 5)
        self.ai_generation_coin_cost = _getenv_int("AI_GENERATION_COIN_COST", 2)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def duitku_base_url(self) -> str:
        if self.duitku_sandbox:
            return "https://sandbox.duitku.com/webapi/api/merchant"
        return "https://passport.duitku.com/webapi/api/merchant"

    def resolved_cors_origins(self) -> list[str]:
        raw = self.cors_allow_origins
        if raw is None:
            return ["http://localhost:5173", "http://localhost:8000"]
        if raw.strip() == "*":
            return ["*"]
        origins = [o.strip() for o in raw.split(",") if o.strip()]
        return origins


settings = Settings()
