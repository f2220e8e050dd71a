from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # 声明 .env 里会出现的字段
    app_name: str = "EcoLend - Equipment Ledger"
    secret_key: str = "dev_secret"
    access_token_expire_minutes: int = 120
    database_url: str = "sqlite:///./ecolend.db"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
