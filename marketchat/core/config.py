import os
from pathlib import Path

from pydantic import ConfigDict, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    SECRET: str
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/marketchat.db"
    # Set to share change events between processes; open_data_store() picks it up
    REALTIME_REDIS_URL: str | None = None
    STORAGE_ROOT: str = "./data/message-attachments"
    STORAGE_BASE_URL: str = "http://localhost:8000"
    SIGNED_URL_TTL_SECONDS: int = 60 * 60 * 24 * 365
    ATTACHMENT_MAX_BYTES: int = 10 * 1024 * 1024
    HEARTBEAT_INTERVAL_SECONDS: float = 60
    ONLINE_TIMEOUT_MINUTES: int = (
        5  # Users are considered online if seen within this many minutes
    )

    model_config = ConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @classmethod
    def get_required_fields(cls) -> list[str]:
        """Get all required fields (those without default values)."""
        return [name for name, field in cls.model_fields.items() if field.is_required()]

    def __init__(self, **kwargs):
        try:
            super().__init__(**kwargs)
        except ValidationError as e:
            env_file = Path(".env")
            required_fields = self.get_required_fields()

            missing_fields = [
                field
                for field in required_fields
                if not os.getenv(field) and field not in kwargs
            ]

            if missing_fields:
                fields_str = "\n".join(f"- {field}" for field in missing_fields)
                example_env = "\n".join(
                    f"{field}=your_{field.lower()}_here" for field in missing_fields
                )

                if not env_file.exists():
                    error_msg = (
                        f"\n\nError: Missing required environment variables!"
                        f"\nMissing variables: {fields_str}"
                        f"\n\nFor local development, create a .env file with:"
                        f"\n{example_env}"
                    )
                else:
                    error_msg = (
                        f"\n\nError: Missing required environment variables!"
                        f"\nMissing variables: {fields_str}"
                        f"\n\nPlease add these to your .env file or set as environment variables."
                    )

                raise ValueError(error_msg) from e
            else:
                raise


settings = Settings()
