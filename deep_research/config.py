from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Model provider defaults (overridable through the stored research config)
    provider: str = "openai"
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    default_model: str = "gpt-4o"

    # Storage
    reports_dir: str = "reports"
    config_path: str = "config.json"

    # Pipeline bounds
    max_iterations: int = 5  # subtopics researched per run
    search_depth: int = 3  # queries issued per subtopic
    results_per_query: int = 3
    metrics_min_findings: int = 3
    planner_strict: bool = False  # raise instead of falling back to the default plan
    verify_model_connection: bool = True  # list models before planning

    # Web search
    search_timeout_seconds: float = 15.0
    search_max_scanned_results: int = 15
    page_fetch_timeout_seconds: float = 10.0
    page_fetch_max_redirects: int = 3
    page_content_max_chars: int = 5000
    search_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # Status streaming
    status_poll_interval_seconds: float = 1.0

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]


settings = Settings()
