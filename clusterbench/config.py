"""Application configuration."""
from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Cluster Performance Benchmark"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Cluster control plane
    CONTROL_PLANE_URL: str = "http://cluster-control:8080"
    CONTROL_PLANE_TIMEOUT_SECONDS: float = 60.0

    # Load engine (transaction emitter)
    LOAD_ENGINE_URL: str = "http://tx-emitter:9100"
    EMIT_TO_VALIDATOR: bool = True
    EMIT_ACCOUNTS_PER_CLIENT: int = 10
    EMIT_WORKERS_PER_ENDPOINT: int = 1

    # Metrics backend
    PROMETHEUS_URL: str = "http://prometheus:9090"
    GRAFANA_URL: str = "http://grafana:3000"
    GRAFANA_DASHBOARD: str = "d/overview10/overview"
    PROMETHEUS_STEP_SECONDS: int = 60

    # Trace backends
    TRACE_SIDECAR_PORT: int = 9102
    ELASTICSEARCH_URL: str = "http://elasticsearch-master:9200"
    ELASTICSEARCH_INDEX: str = "kubernetes-*"

    # Benchmark timing
    BENCH_DURATION_SECONDS: int = 120
    BENCH_BUFFER_SECONDS: float = 60.0
    TRACE_CAPTURE_SECONDS: float = 5.0
    DEADLINE_BASE_SECONDS: int = 600

    # Finished experiments kept in memory by the API process
    MAX_FINISHED_EXPERIMENTS: int = 100

    # Online DB backup, restarted by the shell loop whenever one shot ends
    BACKUP_COMMAND: str = (
        "while true; do "
        "/opt/libra/bin/db-backup one-shot backup "
        "--max-chunk-size 1073741824 --backup-service-port 7777 "
        "state-snapshot "
        "--state-version $(/opt/libra/bin/db-backup one-shot query --backup-service-port 7777 --db-state "
        "| sed -n 's/.* committed_version: \\([0-9]*\\).*/\\1/p') "
        "local-fs --dir $(mktemp -d -t libra_backup_XXXXXXXX); "
        "done"
    )

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
