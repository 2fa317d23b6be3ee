"""
Site Intel — Configuration via environment variables.
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """All settings read from env / .env file."""

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./siteintel.db",
        description="Async SQLAlchemy DB URL",
    )

    # Search providers: Serper and Brave are skipped when no key is set
    brave_search_api_key: str = Field(default="", description="Brave Search subscription token")
    serper_api_key: str = Field(default="", description="Serper.dev API key (optional, tried first)")
    search_timeout_seconds: int = Field(default=10)

    # Content fetching
    fetch_timeout_seconds: int = Field(default=15, description="Per-request timeout for the HTTP stage")
    contact_page_timeout_seconds: int = Field(default=5)
    browser_timeout_ms: int = Field(default=30000, description="Playwright navigation timeout")
    browser_settle_ms: int = Field(default=2000, description="Wait after network idle for lazy content")
    min_content_chars: int = Field(default=200)
    min_region_chars: int = Field(default=100)
    max_content_chars: int = Field(default=50000)
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
    )

    # Discovery
    discovery_max_attempts: int = Field(default=3)
    discovery_page_size: int = Field(default=20, description="Candidates requested per search attempt (max 20)")
    discovery_default_target: int = Field(default=15)

    # Audits
    recent_audit_hours: int = Field(default=24, description="Recency window for reusing an audit")
    recent_audit_scan_limit: int = Field(default=10)

    # Usage costs (USD)
    lead_cost_usd: float = Field(default=0.05)
    lead_tokens: int = Field(default=100)
    audit_cost_usd: float = Field(default=0.03)
    audit_tokens: int = Field(default=1000)

    # Report branding defaults
    report_brand_name: str = Field(default="Site Intel")
    report_primary_color: str = Field(default="#f97316")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
