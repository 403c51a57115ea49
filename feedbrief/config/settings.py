from dotenv import load_dotenv
from pydantic import BaseModel, Field
import os

load_dotenv()

def _to_bool(v: str | None, default: bool = False) -> bool:
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}

def _to_int(v: str | None, default: int) -> int:
    if v is None or not v.strip():
        return default
    return int(v.strip())

def _to_list(v: str | None) -> list[str]:
    if v is None or not v.strip():
        return []
    return [x.strip() for x in v.split(",") if x.strip()]

def _to_float(v: str | None, default: float) -> float:
    if v is None or not v.strip():
        return default
    return float(v.strip())

def _first_env(*names: str, default: str = "") -> str:
    for name in names:
        v = os.getenv(name)
        if v:
            return v
    return default


class Settings(BaseModel):
    database_url: str = Field(default="sqlite:///data/digest.db")
    log_level: str = Field(default="INFO")
    log_file: str = Field(default="logs/run.log")

    # language model (OpenAI-compatible chat completions)
    llm_base_url: str = Field(default="https://api.siliconflow.cn/v1")
    llm_api_key: str = Field(default="")
    llm_model: str = Field(default="deepseek-ai/DeepSeek-V3")
    llm_temperature: float = Field(default=0.7)
    llm_timeout: int = Field(default=120)
    digest_language: str = Field(default="Chinese")
    digest_timezone: str = Field(default="Asia/Shanghai")

    # outbound http
    proxy_url: str = Field(default="")
    fetch_timeout: float = Field(default=15.0)
    fetch_max_bytes: int = Field(default=600_000)
    fetch_concurrency: int = Field(default=6)
    rsshub_url: str = Field(default="")
    nitter_instances: list[str] = Field(default_factory=list)

    # dedup / history
    max_article_age_hours: int = Field(default=72)
    history_window_hours: int = Field(default=72)
    history_retention_days: int = Field(default=7)

    # synthesis
    max_digest_items: int = Field(default=15)
    max_high_priority: int = Field(default=4)
    strict_urls: bool = Field(default=True)

    # webhook
    feishu_webhook: str = Field(default="")
    feishu_secret: str = Field(default="")
    push_delay_seconds: float = Field(default=0.6)
    push_text_limit: int = Field(default=4000)

    # external api (source registry + digest persistence); empty -> local db
    api_base_url: str = Field(default="")
    api_key: str = Field(default="")

    @property
    def webhook_enabled(self) -> bool:
        return bool(self.feishu_webhook)


_settings: Settings | None = None

def get_settings() -> Settings:
    global _settings
    if _settings is not None:
        return _settings

    _settings = Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///data/digest.db"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_file=os.getenv("LOG_FILE", "logs/run.log"),

        llm_base_url=os.getenv("LLM_BASE_URL", "https://api.siliconflow.cn/v1"),
        llm_api_key=_first_env("LLM_API_KEY", "DEEPSEEK_API_KEY"),
        llm_model=os.getenv("LLM_MODEL", "deepseek-ai/DeepSeek-V3"),
        llm_temperature=_to_float(os.getenv("LLM_TEMPERATURE"), 0.7),
        llm_timeout=_to_int(os.getenv("LLM_TIMEOUT"), 120),
        digest_language=os.getenv("DIGEST_LANGUAGE", "Chinese"),
        digest_timezone=os.getenv("DIGEST_TIMEZONE", "Asia/Shanghai"),

        proxy_url=_first_env("HTTPS_PROXY", "HTTP_PROXY", "https_proxy", "http_proxy"),
        fetch_timeout=_to_float(os.getenv("FETCH_TIMEOUT"), 15.0),
        fetch_max_bytes=_to_int(os.getenv("FETCH_MAX_BYTES"), 600_000),
        fetch_concurrency=_to_int(os.getenv("FETCH_CONCURRENCY"), 6),
        rsshub_url=os.getenv("RSSHUB_URL", "").rstrip("/"),
        nitter_instances=_to_list(os.getenv("NITTER_INSTANCES")),

        max_article_age_hours=_to_int(os.getenv("MAX_ARTICLE_AGE_HOURS"), 72),
        history_window_hours=_to_int(os.getenv("HISTORY_WINDOW_HOURS"), 72),
        history_retention_days=_to_int(os.getenv("HISTORY_RETENTION_DAYS"), 7),

        max_digest_items=_to_int(os.getenv("MAX_DIGEST_ITEMS"), 15),
        max_high_priority=_to_int(os.getenv("MAX_HIGH_PRIORITY"), 4),
        strict_urls=_to_bool(os.getenv("STRICT_URLS"), True),

        feishu_webhook=os.getenv("FEISHU_WEBHOOK", ""),
        feishu_secret=os.getenv("FEISHU_SECRET", ""),
        push_delay_seconds=_to_float(os.getenv("PUSH_DELAY_SECONDS"), 0.6),
        push_text_limit=_to_int(os.getenv("PUSH_TEXT_LIMIT"), 4000),

        api_base_url=os.getenv("API_BASE_URL", "").rstrip("/"),
        api_key=os.getenv("API_KEY", ""),
    )
    return _settings


def reset_settings() -> None:
    global _settings
    _settings = None
