"""Runtime configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    log_level: str = "INFO"
    json_logs: bool = False

    total_requests: int = 5000
    batch_size: int = 1000

    # Shared connection pool
    timeout_seconds: float = 30.0
    max_idle_per_host: int = 5000
    user_agent: str = "Mozilla/5.0"

    token_file: str = ".token"
    template_base_url: str = "https://calc.test.trahan.dev/calculated"

    model_config = {"env_prefix": "WEBTEST_", "env_file": ".env", "extra": "ignore"}
