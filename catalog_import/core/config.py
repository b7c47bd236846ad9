from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./catalog_import.db"
    debug: bool = True
    log_level: str = "INFO"
    allowed_origins: str = "http://localhost:5173,http://localhost:3000"

    # Import pipeline
    max_concurrent_jobs: int = 2  # Background workers running imports at once
    progress_update_interval_rows: int = 100  # Recompute throughput/ETA every N rows
    progress_update_interval_seconds: float = 1.0  # ...or at least this often
    csv_chunk_size: int = 5000  # Rows pulled from pandas per CSV chunk
    upload_max_file_size_mb: int = 10
    empty_file_policy: str = "complete"  # "complete" or "fail"

    # Finished jobs are kept for polling until dismissed or expired (0 keeps forever)
    job_retention_hours: float = 24.0

    model_config = ConfigDict(env_file=".env", extra="ignore")


settings = Settings()
