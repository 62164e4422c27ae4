import os
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(val: str | None) -> list[str]:
    return [v.strip() for v in (val or "").split(",") if v.strip()]


class Settings(BaseSettings):
    # App
    APP_NAME: str = "Cardano Hub Quests"
    ENV: str = os.getenv("ENV", "production")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Frontend URL used for CORS
    NEXT_PUBLIC_URL: str = os.getenv("NEXT_PUBLIC_URL", "https://cardanohub.id")

    # CORS (schemed origins like https://cardanohub.id)
    ALLOW_ORIGINS: list[str] = Field(default_factory=list)  # override via ALLOWED_ORIGINS (CSV)
    ALLOW_METHODS: list[str] = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
    ALLOW_HEADERS: list[str] = ["*"]
    ALLOW_CREDENTIALS: bool = True

    # DB
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./questhub.db")

    # Auth / JWT
    JWT_SECRET: str = os.getenv("SECRET_KEY") or os.getenv("JWT_SECRET", "dev-secret-change-me")
    JWT_ALG: str = "HS256"
    ACCESS_TOKEN_EXPIRES_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRES_MINUTES", "43200"))  # 30 days

    # Social platforms
    TWITTER_API_IO_KEY: str = Field(default="", alias="twitter_api_io_key")
    TWITTER_API_BASE_URL: str = "https://api.twitterapi.io/twitter"
    TWITTER_MAX_PAGES: int = 50
    DISCORD_BOT_TOKEN: str = Field(default="", alias="discord_bot_token")
    DISCORD_API_BASE_URL: str = "https://discord.com/api/v10"
    HTTP_TIMEOUT_SECONDS: float = 15.0

    # Chain
    BLOCKFROST_PROJECT_ID: str = Field(default="", alias="blockfrost_project_id")
    CARDANO_NETWORK: str = os.getenv("CARDANO_NETWORK", "preview")  # preview | preprod | mainnet
    REWARD_POOL_SCRIPT_CBOR: str = Field(default="", alias="reward_pool_script_cbor")
    POOL_SIGNING_KEY_PATH: str = os.getenv("POOL_SIGNING_KEY_PATH", "keys/pool_owner.skey")
    MIN_POOL_LOVELACE: int = 2_000_000

    # Pool submission
    POOL_SUBMIT_MAX_ATTEMPTS: int = 5
    POOL_RETRY_BACKOFF_SECONDS: float = 2.0
    CONFIRMATION_TIMEOUT_SECONDS: float = 60.0
    CONFIRMATION_POLL_SECONDS: float = 5.0

    # Load .env file
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", populate_by_name=True)

    # ---------- Helpers ----------

    def frontend_origins(self) -> list[str]:
        if self.ALLOW_ORIGINS:
            return self.ALLOW_ORIGINS
        return [self.NEXT_PUBLIC_URL.rstrip("/"), "http://localhost:3000", "http://127.0.0.1:3000"]

    def blockfrost_base_url(self) -> str:
        network = self.CARDANO_NETWORK.lower()
        if network == "mainnet":
            return "https://cardano-mainnet.blockfrost.io/api/"
        return f"https://cardano-{network}.blockfrost.io/api/"


def build_settings() -> Settings:
    s = Settings()

    if s.DATABASE_URL.startswith("postgres://"):
        s.DATABASE_URL = s.DATABASE_URL.replace("postgres://", "postgresql://", 1)

    # Load CORS overrides
    env_origins = _split_csv(os.getenv("ALLOWED_ORIGINS"))
    if env_origins:
        s.ALLOW_ORIGINS = env_origins
    else:
        s.ALLOW_ORIGINS = s.frontend_origins()

    if s.POOL_SUBMIT_MAX_ATTEMPTS < 1:
        s.POOL_SUBMIT_MAX_ATTEMPTS = 1

    return s


settings = build_settings()
