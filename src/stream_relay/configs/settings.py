from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):

    ROOT_DIR: Path = Path(__file__).parent.parent.parent.parent

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3001
    LOG_LEVEL: str = "INFO"
    CORS_ALLOW_ORIGINS: List[str] = ["*"]

    # Session registry
    SWEEP_INTERVAL: float = 300.0  # seconds between idle sweeps (5 min)
    SESSION_IDLE_TIMEOUT: float = 1800.0  # seconds idle before a finished session is evicted (30 min)

    # Simulated producer
    PRODUCER_DELAY: float = 0.1  # pacing delay per word

    # Observability
    OTEL_ENABLED: bool = True
    OTLP_TRACE_ENDPOINT: str = ""  # empty = console exporter

    model_config = SettingsConfigDict(
        env_prefix="STREAM_RELAY_",
        env_file=ROOT_DIR / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )


settings = Settings()
if __name__ == "__main__":
    print(settings.model_dump_json())
