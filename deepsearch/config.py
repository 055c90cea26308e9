from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # OpenRouter
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    default_model: str = "google/gemini-2.0-flash-001"
    openrouter_model: str = ""
    evaluator_model: str = ""  # optional override for answer evaluation only
    llm_temperature: float = 0.7
    llm_max_tokens: int = 4096

    # Search provider
    search_provider: str = "jina"  # jina | brave | tavily
    jina_api_key: str = ""
    brave_api_key: str = ""
    tavily_api_key: str = ""
    search_fallback_to_tavily: bool = False
    search_max_results_per_query: int = 10
    search_max_rewritten_queries: int = 3
    search_cooldown_seconds: float = 5.0

    # Page reader
    jina_reader_base_url: str = "https://r.jina.ai"
    reader_timeout_seconds: float = 60.0

    # Research loop
    token_budget: int = 30_000_000
    step_delay_seconds: float = 1.0
    max_malformed_retries: int = 1
    # Consecutive decision-oracle outages tolerated before giving up; 0 disables the cap.
    max_consecutive_outages: int = 10

    # Session snapshots
    persist_context: bool = True
    context_dir: str = ".cache/context"

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]

    def missing_credentials(self) -> list[str]:
        """Names of secrets the configured collaborators need but do not have."""
        missing: list[str] = []
        if not self.openrouter_api_key:
            missing.append("OPENROUTER_API_KEY")
        if not self.jina_api_key:
            # The page reader always goes through Jina.
            missing.append("JINA_API_KEY")
        provider = self.search_provider.lower().strip()
        if provider == "brave" and not self.brave_api_key:
            missing.append("BRAVE_API_KEY")
        if (provider == "tavily" or self.search_fallback_to_tavily) and not self.tavily_api_key:
            missing.append("TAVILY_API_KEY")
        return missing


settings = Settings()
