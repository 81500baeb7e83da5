# chat_server/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Manages the relay server's configuration settings using pydantic-settings.
    Values come from environment variables or a server.env file.
    """

    model_config = SettingsConfigDict(
        env_file="server.env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Network Settings ---
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8888

    # Longest line (in bytes) a client may send before its session is dropped.
    MAX_LINE_BYTES: int = 64 * 1024

    # --- Logging Settings ---
    LOG_LEVEL: str = "INFO"


# Single, globally accessible instance. Other modules import `settings`.
settings = Settings()
