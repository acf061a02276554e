"""Runtime settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="AMPGATE_", extra="ignore")

    app_name: str = "AmpGate"
    env: str = "dev"
    log_level: str = "info"
    # DEBUG 下是否打印完整请求正文；False 时只打 path/target/headers + body_size
    log_full_request_body: bool = False
    # 置空则只输出到 stderr
    log_dir: str = "logs"
    log_max_bytes: int = 10 * 1024 * 1024
    log_backup_count: int = 10

    # profiles.yaml 不存在时所有协议视为未配置
    profiles_path: str = "config/profiles.yaml"
    internal_base_url: str = "https://ampcode.com"
    internal_api_key: str = ""
    search_api_key: str = ""

    upstream_timeout_seconds: float = 600.0
    upstream_max_connections: int = 100
    upstream_max_keepalive_connections: int = 20

    tool_connect_timeout_seconds: float = 10.0
    tool_request_timeout_seconds: float = 15.0
    tool_max_response_bytes: int = Field(default=5 * 1024 * 1024, gt=0)
    search_api_url: str = "https://api.tavily.com/search"
    fallback_search_url: str = "https://html.duckduckgo.com/html/"
    browser_user_agent: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/143.0.0.0 Safari/537.36"
    )
    browser_accept_language: str = "zh-CN,zh;q=0.9,en;q=0.8"


settings = Settings()
