from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    rules_catalog_path: str = "/data/catalog"
    card_history_path: str = "/data/cards.yaml"
    timezone: str = "UTC"
    allowed_origins: str = "http://localhost:3000"
    rate_limit_enabled: bool = True
    catalog_reload_interval: int = 30  # seconds, 0 to disable

    model_config = {"env_prefix": "", "case_sensitive": False}


settings = Settings()
