from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Clado deep research (people search)
    clado_api_key: str = ""
    clado_base_url: str = "https://search.clado.ai/api/search"
    clado_result_limit: int = 30
    clado_poll_interval_seconds: float = 30.0
    clado_max_poll_attempts: int = 20
    clado_request_timeout_seconds: float = 30.0
    completed_job_retention: int = 100

    # Supabase
    supabase_url: str = ""
    supabase_service_key: str = ""

    # OpenRouter (transcript analysis)
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    analysis_model: str = "openai/gpt-5"

    # Vapi (voice call listing)
    vapi_private_key: str = ""
    vapi_base_url: str = "https://api.vapi.ai"
    vapi_dashboard_assistant_id: str = ""
    vapi_questions_assistant_id: str = ""
    vapi_call_list_limit: int = 10

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


settings = Settings()
