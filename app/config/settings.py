from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # GCP / BigQuery
    gcp_project_id: str = "iucc-f4d"
    gcp_key_file: Optional[str] = None  # Path to the service account key file
    gcp_service_account_key: Optional[str] = None  # JSON key as string or path
    bigquery_location: Optional[str] = None

    # Permission table (row-level grants)
    permissions_dataset: str = "user_device_permission"
    permissions_table: str = "permissions"

    # Experiment table layout
    experiment_column: str = "ExperimentData_Exp_name"
    mac_address_column: str = "ExperimentData_MAC_address"
    timestamp_column: str = "TimeStamp"
    sensor_column_prefix: str = "SensorData_"

    # Resolution tuning
    sensor_discovery_strategy: str = "hybrid"  # hybrid | sample | full
    metadata_max_concurrency: int = 4
    query_timeout_seconds: float = 30.0
    data_max_rows: int = 50000

    # App
    app_name: str = "experiment-portal-backend"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def permissions_table_ref(self) -> str:
        return f"{self.gcp_project_id}.{self.permissions_dataset}.{self.permissions_table}"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()
