import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RelaySettings(BaseSettings):
    model_config = SettingsConfigDict(
        # Priority: environment variables > .env file
        env_prefix="RELAY_",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=True,
        extra="ignore",
    )

    # Frames queued per connection before it is evicted as a slow consumer. 0 = unbounded.
    OUTBOUND_QUEUE_SIZE: int = Field(default=1000, ge=0)
    # Inbound websocket frames larger than this are dropped. 0 = no limit.
    MAX_FRAME_BYTES: int = Field(default=65536, ge=0)
    # Request header carrying the session credential.
    SESSION_HEADER: str = "X-Session-Key"


# Load a local .env before building the settings instance.
_here = Path(__file__).resolve().parent
for env_path in (_here.parent / ".env", Path(os.getcwd()) / ".env"):
    if env_path.exists():
        load_dotenv(env_path, override=False)
        break

config = RelaySettings()
