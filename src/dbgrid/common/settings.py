from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load environment variables from .env into os.environ
load_dotenv()


class Settings(BaseSettings):
    """Library configuration backed by environment variables."""

    query_rows_limit: int = Field(
        default=1000,
        validation_alias="QUERY_ROWS_LIMIT",
        description="Server-wide maximum number of rows returned by one page."
    )
    schemas_limit: int = Field(
        default=500,
        validation_alias="SCHEMAS_LIMIT",
        description="Maximum number of schemas listed for a connection."
    )
    tables_limit: int = Field(
        default=1000,
        validation_alias="TABLES_LIMIT",
        description="Maximum number of tables listed for a schema."
    )
    databases_limit: int = Field(
        default=500,
        validation_alias="DATABASES_LIMIT",
        description="Maximum number of databases listed for a connection."
    )
    cell_max_length: int = Field(
        default=200,
        validation_alias="CELL_MAX_LENGTH",
        description="Display length (in code points) after which result cells are truncated."
    )

    exec_workers: int = Field(
        default=8,
        validation_alias="EXEC_WORKERS",
        description="Max workers of the blocking I/O pool running database operations."
    )
    exec_timeout_sec: int = Field(
        default=60,
        validation_alias="EXEC_TIMEOUT_SEC",
        description="How long a caller waits for one operation before giving up."
    )
    connect_timeout_sec: int = Field(
        default=10,
        validation_alias="CONNECT_TIMEOUT_SEC",
        description="Driver-level connect timeout passed to backends that support it."
    )

    connections_config_path: str = Field(
        default="configs/connections.yaml",
        validation_alias="CONNECTIONS_CONFIG",
        description="Path to the YAML file listing connection profiles."
    )

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_json: bool = Field(default=False, validation_alias="LOG_JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )


settings = Settings()

# Configure logging during import
from dbgrid.common.logger import configure_logging
configure_logging(level=settings.log_level, json_format=settings.log_json)
