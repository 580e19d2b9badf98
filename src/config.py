from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "CatalogMatcher"
    debug: bool = False
    log_level: str = "INFO"

    database_url: str = "sqlite:///./catalog.db"

    default_user_id: int = 39

    category_fuzzy_threshold: float = 85.0
    brand_fuzzy_threshold: float = 85.0
    category_prescan_threshold: float = 75.0

    product_min_words: int = 3
    product_candidate_floor: int = 2
    product_accept_score: int = 3
    word_similarity_threshold: float = 85.0

    entity_create_attempts: int = 3

    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = False


settings = Settings()
