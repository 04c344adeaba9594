from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Runtime ---
    ENV: str = "dev"  # dev|prod
    FLATWATCH_DB_URL: str = "sqlite+aiosqlite:///./data/flatwatch.db"
    LOG_LEVEL: str = "INFO"

    # --- Minimal API auth ---
    # Send: X-API-Key: <key>
    API_KEY: str | None = None

    # --- Upstream source ---
    SOURCE_KIND: str = "pik_api"  # pik_api|pik_site|stub_json
    PIK_API_BASE: str = "https://api.pik.ru"
    PIK_API_VERSION: str = "v2"
    PIK_SITE_URL: str = "https://www.pik.ru"
    STUB_FIXTURES_DIR: str = "data/stub_listings"

    # pagination guards (upstream sometimes never returns a short page)
    LISTINGS_PAGE_SIZE: int = 100
    LISTINGS_MAX_OFFSET: int = 2000
    PROJECTS_BLOCK_LIMIT: int = 100
    SITE_MAX_PAGES: int = 10
    # the site has no catalogue endpoint: project slugs to resolve on sync (CSV)
    SITE_PROJECT_SLUGS: str = ""

    # --- HTTP behaviour ---
    HTTP_TIMEOUT_S: float = 30.0
    HTTP_REQUEST_DELAY_S: float = 2.0  # be polite
    HTTP_MAX_RETRIES: int = 2
    HTTP_BACKOFF_BASE_S: float = 0.5
    HTTP_CIRCUIT_FAIL_THRESHOLD: int = 5
    HTTP_CIRCUIT_RESET_S: float = 60.0
    HTTP_USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # --- Ingestion ---
    # one combined upstream call for all tracked projects, or one call per project
    INGEST_BATCHED: bool = True
    CYCLE_LOCK_STALE_S: int = 3600

    # --- E-mail (quiet by default) ---
    EMAIL_ENABLED: bool = False
    EMAIL_DEFAULT_TO: str | None = None
    EMAIL_FROM: str = "noreply@example.com"
    EMAIL_FROM_NAME: str = "Flat Tracker"
    NOTIFY_PRICE_INCREASES: bool = False
    # how far back POST /jobs/notify/resend looks for unsent new-listing notices
    NOTIFY_RESEND_WINDOW_H: float = 24
    CURRENCY_LABEL: str = "₽"

    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_ENCRYPTION: str = "tls"  # tls|ssl|none
    SMTP_TIMEOUT_S: float = 30.0

    # --- Scheduler tuning ---
    SCHED_CYCLE_INTERVAL_HOURS: float = 6
    SCHED_SYNC_INTERVAL_HOURS: float = 24


def load_settings(**overrides) -> Settings:
    """
    Build a Settings object from env/.env. Entrypoints call this once and pass
    the result down; nothing in the package reads a module-level instance.
    """
    return Settings(**overrides)
