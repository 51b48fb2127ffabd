from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    APP_NAME: str = "TRANSIT-DISPATCH"
    DATABASE_URL: str = "sqlite+pysqlite:///./transit.db"
    LOG_LEVEL: str = "INFO"
    METRICS_ENABLED: bool = True
    DISPATCH_NUMBER_PREFIX: str = "DSP"
    DISPATCH_LIST_DEFAULT_PAGE_SIZE: int = 50
    DISPATCH_LIST_MAX_PAGE_SIZE: int = 200
    BARCODE_MAX_LENGTH: int = 128
    OPS_ENABLE_INTEGRITY_SCAN: bool = True
    DEFAULT_SOURCE_STORE_NAME: str = "Main Warehouse"
    DEFAULT_DESTINATION_STORE_NAME: str = "Downtown Store"

settings = Settings()
