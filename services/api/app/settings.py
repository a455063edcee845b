import os
from typing import List

from pydantic import BaseModel

from app.errors import ConfigurationError

DEFAULT_COURSE_TAGS = (
    "Introduction to SSI,Digital Identity Fundamentals,Blockchain and SSI,"
    "Privacy and Security in SSI,Implementing SSI Solutions"
)


def _split(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseModel):
    acapy_admin_url: str = os.getenv("ACAPY_ADMIN_URL", "")
    acapy_admin_api_key: str = os.getenv("ACAPY_ADMIN_API_KEY", "")
    agent_id: str = os.getenv("AGENT_ID", "401")
    agent_endpoints: List[str] = _split(os.getenv("AGENT_ENDPOINTS", ""))
    admin_port: int = int(os.getenv("ADMIN_PORT", "8031"))
    inbound_port: int = int(os.getenv("INBOUND_PORT", "8030"))
    offer_expiry_seconds: int = int(os.getenv("OFFER_EXPIRY_SECONDS", str(60 * 60 * 60)))
    poll_interval_seconds: int = int(os.getenv("POLL_INTERVAL_SECONDS", "3"))
    issuer_label: str = os.getenv("ISSUER_LABEL", "SSI Portal")
    performance_course_tags: List[str] = _split(os.getenv("PERFORMANCE_COURSE_TAGS", DEFAULT_COURSE_TAGS))
    db_dsn: str = os.getenv("DB_DSN", "sqlite:///./agent.db")
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    shortener_enabled: bool = os.getenv("SHORTENER_ENABLED", "true").lower() == "true"
    public_base_url: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:3001")
    short_link_ttl_seconds: int = int(os.getenv("SHORT_LINK_TTL_SECONDS", str(7 * 24 * 3600)))
    nym_bcovrin_url: str = os.getenv("NYM_BCOVRIN_URL", "http://test.bcovrin.vonx.io/register")
    nym_indicio_url: str = os.getenv("NYM_INDICIO_URL", "https://selfserve.indiciotech.io/nym")
    http_timeout_seconds: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))
    otlp_endpoint: str = os.getenv("OTLP_ENDPOINT", "")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_file: str = os.getenv("LOG_FILE", "")
    ui_cors_origins: str = os.getenv("UI_CORS_ORIGINS", "*")

    def require(self):
        missing = []
        if not self.acapy_admin_url:
            missing.append("ACAPY_ADMIN_URL")
        if missing:
            raise ConfigurationError(
                "Missing required environment variables to initialize the agent: "
                + ", ".join(missing)
            )
