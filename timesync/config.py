from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"
DEFAULT_STORAGE_DIR = Path(__file__).resolve().parent.parent / ".data" / "storage"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Persistent JSON documents (ledger, reviews, decisions, processed meetings)
    STORAGE_DIR: Path = DEFAULT_STORAGE_DIR

    # Azure OpenAI / OpenAI settings
    AZURE_OPENAI_ENDPOINT: str | None = None
    AZURE_OPENAI_API_KEY: str | None = None
    AZURE_OPENAI_DEPLOYMENT: str | None = None
    AZURE_OPENAI_API_VERSION: str = "2024-02-15-preview"
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o"
    OPENAI_TEMPERATURE: float = 0.7
    OPENAI_MAX_TOKENS: int = 8000
    OPENAI_TIMEOUT_SECONDS: float = 30.0
    OPENAI_MAX_RETRIES: int = 3
    OPENAI_RETRY_DELAY_SECONDS: float = 1.0
    OPENAI_REQUESTS_PER_MINUTE: int = 48
    OPENAI_TOKENS_PER_MINUTE: int = 8000

    # Intervals time-tracking settings
    INTERVALS_API_URL: str = "https://api.myintervals.com"
    INTERVALS_TIMEOUT_SECONDS: float = 30.0
    INTERVALS_MEETING_WORKTYPE_ID: str = "802279"

    # Microsoft Graph (calendar + attendance reports)
    GRAPH_TENANT_ID: str | None = None
    GRAPH_CLIENT_ID: str | None = None
    GRAPH_CLIENT_SECRET: str | None = None
    GRAPH_TIMEOUT_SECONDS: float = 30.0

    # =================================================================
    # MATCHING PIPELINE - thresholds are tunables, not calibrated rules
    # =================================================================
    REVIEW_CONFIDENCE_THRESHOLD: float = 0.7
    KEYWORD_MATCH_CONFIDENCE: float = 0.9
    HIGH_CONFIDENCE_BUCKET: float = 0.8
    MEDIUM_CONFIDENCE_BUCKET: float = 0.5

    DUPLICATE_DURATION_TOLERANCE_SECONDS: int = 60
    DUPLICATE_BATCH_SIZE: int = 3
    DUPLICATE_BATCH_DELAY_SECONDS: float = 15.0
    DUPLICATE_AI_MIN_CONFIDENCE: float = 0.7
    DUPLICATE_AI_TEMPERATURE: float = 0.3
    DUPLICATE_AI_MAX_TOKENS: int = 1000

    MATCH_BATCH_SIZE: int = 20
    MATCH_DELAY_SECONDS: float = 0.5
    MATCH_AI_TEMPERATURE: float = 0.3
    MATCH_AI_MAX_TOKENS: int = 1000

    QUEUE_ZERO_ATTENDANCE_FOR_REVIEW: bool = False

    # Background sync worker (single mailbox)
    SYNC_LOOKBACK_DAYS: int = 7
    SYNC_USER_EMAIL: str | None = None
    SYNC_INTERVALS_API_KEY: str | None = None
    PENDING_RECONCILIATION_AGE_MINUTES: int = 30

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def ai_configured(self) -> bool:
        """Whether any language-model backend has credentials."""
        if self.AZURE_OPENAI_ENDPOINT:
            return bool(self.AZURE_OPENAI_API_KEY and self.AZURE_OPENAI_DEPLOYMENT)
        return bool(self.OPENAI_API_KEY)

    def ai_model(self) -> str:
        """Deployment name for Azure, model name otherwise."""
        if self.AZURE_OPENAI_ENDPOINT and self.AZURE_OPENAI_DEPLOYMENT:
            return self.AZURE_OPENAI_DEPLOYMENT
        return self.OPENAI_MODEL

    def graph_token_url(self) -> str:
        return f"https://login.microsoftonline.com/{self.GRAPH_TENANT_ID}/oauth2/v2.0/token"

    def get_confidence_buckets(self) -> dict:
        """
        Get UI confidence bucket boundaries.
        Used by the batch matching endpoint to group results.
        """
        return {
            "high": self.HIGH_CONFIDENCE_BUCKET,
            "medium": self.MEDIUM_CONFIDENCE_BUCKET,
        }


settings = Settings()
