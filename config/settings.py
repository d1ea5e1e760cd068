"""
Configuration settings for the Park Reconciler project.

This module centralizes all configuration values and provides a single source of truth for all
configurable parameters.
"""

import os
from typing import Optional


class Config:
    """
    Central configuration class for the Park Reconciler project.

    This class consolidates all configuration values including upstream API settings,
    database connections, matching and geometry tuning, ingestion batching,
    chunked transfer behavior and logging.
    """

    # Application identity
    APP_NAME: str = "Park-Reconciler"
    APP_VERSION: str = "1.0"
    USER_EMAIL: str = "unknown@example.com"

    # NPS API
    NPS_API_BASE_URL: str = "https://developer.nps.gov/api/v1"
    NPS_API_KEY: Optional[str] = None

    # Recreation.gov (RIDB) API
    RECREATION_GOV_API_BASE_URL: str = "https://ridb.recreation.gov/api/v1"
    RECREATION_GOV_API_KEY: Optional[str] = None

    # Mapbox geocoding
    MAPBOX_API_BASE_URL: str = "https://api.mapbox.com/geocoding/v5/mapbox.places"
    MAPBOX_ACCESS_TOKEN: Optional[str] = None
    GEOCODE_MIN_RELEVANCE: float = 0.7
    GEOCODE_CACHE_TTL_SECONDS: int = 24 * 3600
    GEOCODE_CACHE_MAX_ENTRIES: int = 1024

    # API Request Settings
    REQUEST_TIMEOUT: int = 30
    API_PAGE_LIMIT: int = 50
    API_PAGE_DELAY_SECONDS: float = 0.1
    API_MAX_RETRIES: int = 3
    API_RETRY_DELAY: float = 2.0
    RATE_LIMIT_DEFAULT_WAIT: int = 60
    RATE_LIMIT_MAX_WAITS: int = 5
    RATE_LIMIT_WARNING_THRESHOLD: int = 50

    # Database Configuration
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "parks_data"
    DB_USER: str = "postgres"
    DB_PASSWORD: Optional[str] = None
    PARKS_TABLE: str = "parks"

    # Entity matching
    MATCH_MAX_LENGTH_DIFFERENCE: int = 5
    MATCH_ALLOW_CONTAINMENT: bool = True

    # Geometry
    DEFAULT_CRS: str = "EPSG:4326"
    DEFAULT_SRID: int = 4326
    SIMPLIFY_TOLERANCE_METERS: float = 152.0  # ~500 feet
    METERS_PER_DEGREE: float = 111000.0
    GEOMETRY_MAX_DEPTH: int = 4

    # Ingestion
    INGEST_BATCH_SIZE: int = 100
    BACKGROUND_BATCH_SIZE: int = 500
    API_ITEM_TIMEOUT_SECONDS: float = 30.0
    STORE_MAX_ATTEMPTS: int = 3
    STORE_RETRY_BASE_DELAY: float = 1.0

    # Chunked transfer and object storage
    STORAGE_ROOT: str = "storage"
    CHUNK_SIZE_BYTES: int = 20 * 1024 * 1024  # 20 MiB
    CHUNK_MAX_RETRIES: int = 3
    CHUNK_RETRY_BASE_DELAY: float = 1.0
    CHUNK_DELAY_SECONDS: float = 0.1
    CHUNK_RESUME_THRESHOLD: float = 0.9

    # Background jobs
    JOB_MAX_CONCURRENCY: int = 2
    JOB_MAX_RETRIES: int = 3

    # Logging Configuration
    LOG_LEVEL: str = "INFO"
    LOG_MAX_BYTES: int = 5 * 1024 * 1024  # 5MB
    LOG_BACKUP_COUNT: int = 3
    INGESTION_LOG_FILE: str = "logs/ingestion.log"
    SYNC_LOG_FILE: str = "logs/api_sync.log"
    TRANSFER_LOG_FILE: str = "logs/chunked_transfer.log"
    ORCHESTRATOR_LOG_FILE: str = "logs/orchestrator.log"

    def __init__(self):
        """Initialize configuration by loading from environment variables."""
        self._load_from_env()

    def _load_from_env(self):
        """Load configuration values from environment variables."""
        # API keys
        nps_api_key = os.getenv("NPS_API_KEY")
        if nps_api_key:
            self.NPS_API_KEY = nps_api_key

        recreation_gov_api_key = os.getenv("RECREATION_GOV_API_KEY")
        if recreation_gov_api_key:
            self.RECREATION_GOV_API_KEY = recreation_gov_api_key

        mapbox_token = os.getenv("MAPBOX_ACCESS_TOKEN")
        if mapbox_token:
            self.MAPBOX_ACCESS_TOKEN = mapbox_token

        user_email = os.getenv("PARKS_USER_EMAIL")
        if user_email:
            self.USER_EMAIL = user_email

        # Database settings
        db_host = os.getenv("POSTGRES_HOST")
        if db_host:
            self.DB_HOST = db_host

        db_port = os.getenv("POSTGRES_PORT")
        if db_port:
            self.DB_PORT = int(db_port)

        db_name = os.getenv("POSTGRES_DB")
        if db_name:
            self.DB_NAME = db_name

        db_user = os.getenv("POSTGRES_USER")
        if db_user:
            self.DB_USER = db_user

        db_password = os.getenv("POSTGRES_PASSWORD")
        if db_password:
            self.DB_PASSWORD = db_password

        parks_table = os.getenv("PARKS_TABLE")
        if parks_table:
            self.PARKS_TABLE = parks_table

        # Optional overrides
        request_timeout = os.getenv("REQUEST_TIMEOUT")
        if request_timeout:
            self.REQUEST_TIMEOUT = int(request_timeout)

        match_length = os.getenv("MATCH_MAX_LENGTH_DIFFERENCE")
        if match_length:
            self.MATCH_MAX_LENGTH_DIFFERENCE = int(match_length)

        allow_containment = os.getenv("MATCH_ALLOW_CONTAINMENT")
        if allow_containment:
            self.MATCH_ALLOW_CONTAINMENT = allow_containment.lower() in (
                "1",
                "true",
                "yes",
            )

        batch_size = os.getenv("INGEST_BATCH_SIZE")
        if batch_size:
            self.INGEST_BATCH_SIZE = int(batch_size)

        chunk_size = os.getenv("CHUNK_SIZE_BYTES")
        if chunk_size:
            self.CHUNK_SIZE_BYTES = int(chunk_size)

        storage_root = os.getenv("STORAGE_ROOT")
        if storage_root:
            self.STORAGE_ROOT = storage_root

        log_level = os.getenv("LOG_LEVEL")
        if log_level:
            self.LOG_LEVEL = log_level

    def validate_for_api_operations(self, source: str = "nps") -> None:
        """
        Validate that the credentials needed by an upstream API client are present.

        Args:
            source (str): One of 'nps', 'recreation_gov' or 'mapbox'

        Raises:
            ValueError: If the required key is missing or the source is unknown.
        """
        required = {
            "nps": ("NPS_API_KEY", self.NPS_API_KEY),
            "recreation_gov": ("RECREATION_GOV_API_KEY", self.RECREATION_GOV_API_KEY),
            "mapbox": ("MAPBOX_ACCESS_TOKEN", self.MAPBOX_ACCESS_TOKEN),
        }
        if source not in required:
            raise ValueError(f"Unknown API source '{source}'")

        env_name, value = required[source]
        if not value:
            raise ValueError(
                f"{env_name} environment variable is required. "
                "Please set it in your .env file or environment."
            )

    def validate_for_database_operations(self) -> None:
        """
        Validate required database configuration values.

        Raises:
            ValueError: If required configuration is missing.
        """
        if not self.DB_PASSWORD:
            raise ValueError(
                "POSTGRES_PASSWORD environment variable is required. "
                "Please set it in your .env file or environment."
            )

    def get_database_url(self) -> str:
        """
        Generate database connection URL.

        Returns:
            str: PostgreSQL connection URL
        """
        return f"postgresql+psycopg2://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"


# Global configuration instance
config = Config()
