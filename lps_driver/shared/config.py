"""
MODULE OVERVIEW:
Application-wide configuration using Pydantic Settings.

WHAT IS HAPPENING HERE:
Every protocol timing the driver relies on lives here: the 35s request timeout,
the 25s server-side wait, the fixed 5s restart delay. The long-poll server only
promises to hold a request for `wait` seconds, so REQUEST_TIMEOUT_S must stay
above LONG_POLL_WAIT_S or healthy empty polls turn into transport errors.
Override any key with an `LPS_` prefixed environment variable or a `.env` file.
"""
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    LOG_LEVEL: str = "INFO"

    # Directory API
    API_BASE_URL: str = "https://api.vk.com/method"
    API_VERSION: str = "5.131"
    ACCESS_TOKEN: str = ""
    DIRECTORY_METHOD: str = "messages.getLongPollServer"

    # Long Polling
    REQUEST_TIMEOUT_S: float = 35.0
    LONG_POLL_WAIT_S: int = 25
    LONG_POLL_MODE: int = 2
    RESTART_DELAY_S: float = 5.0

    # Cursor persistence
    CURSOR_FILE: str = ".lps_cursor.json"

    # Sandbox server
    SANDBOX_HOST: str = "127.0.0.1"
    SANDBOX_PORT: int = 8000
    SANDBOX_CHATTER_INTERVAL_S: float = 0.0

    class Config:
        env_file = ".env"
        env_prefix = "LPS_"
        env_file_encoding = 'utf-8'
        extra = 'ignore'

settings = Settings()
