from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # API
    api_base_url: str = "http://localhost:3000"
    api_token: str = ""
    request_timeout_seconds: float = 15.0
    get_retries: int = 1  # GET only, never mutations

    # Lists
    default_page_size: int = 10
    search_debounce_seconds: float = 0.3

    # Menus
    menu_gap_px: int = 5

    # Logging (CLI only; the library never configures handlers)
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
