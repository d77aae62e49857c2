from typing import List, Union, Optional
from datetime import time
from pydantic import AnyHttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PROJECT_NAME: str = "Clinicflow Scheduling & Queue"
    API_V1_STR: str = "/api/v1"
    DEBUG: bool = False

    # CORS
    BACKEND_CORS_ORIGINS: List[AnyHttpUrl] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # Database
    POSTGRES_SERVER: Optional[str] = None
    POSTGRES_USER: Optional[str] = None
    POSTGRES_PASSWORD: Optional[str] = None
    POSTGRES_DB: Optional[str] = None
    POSTGRES_PORT: str = "5432"
    DATABASE_URL: Optional[str] = None
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20

    @model_validator(mode='after')
    def assemble_db_connection(self) -> 'Settings':
        if not self.DATABASE_URL:
            if all([self.POSTGRES_USER, self.POSTGRES_PASSWORD, self.POSTGRES_SERVER, self.POSTGRES_DB]):
                self.DATABASE_URL = str(
                    f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@"
                    f"{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
                )
            else:
                self.DATABASE_URL = "sqlite+aiosqlite:///./clinicflow.db"

        if self.DATABASE_URL.startswith("postgresql://"):
            self.DATABASE_URL = self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif self.DATABASE_URL.startswith("sqlite:///"):
            self.DATABASE_URL = self.DATABASE_URL.replace("sqlite:///", "sqlite+aiosqlite:///", 1)

        # Clean parameters for asyncpg
        self.DATABASE_URL = self.DATABASE_URL.replace("sslmode=require", "ssl=require")
        if "channel_binding=" in self.DATABASE_URL:
            import re
            self.DATABASE_URL = re.sub(r"[&?]channel_binding=[^&]*", "", self.DATABASE_URL)

        return self

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Business calendar
    DEFAULT_TIMEZONE: str = "UTC"

    # Slot inventory
    DEFAULT_APPOINTMENT_DURATION_MINUTES: int = 30
    ALLOWED_APPOINTMENT_DURATIONS: List[int] = [15, 20, 30, 45, 60]
    MORNING_START: time = time(6, 0)
    MORNING_END: time = time(14, 0)
    EVENING_END: time = time(22, 0)
    SLOT_REGENERATION_HORIZON_MONTHS: int = 3
    SLOT_INSERT_BATCH_SIZE: int = 500
    MAX_SLOT_GENERATION_DAYS: int = 366

    @field_validator("ALLOWED_APPOINTMENT_DURATIONS", mode="before")
    @classmethod
    def assemble_durations(cls, v: Union[str, int, List[int]]) -> List[int]:
        if isinstance(v, int):
            return [v]
        if isinstance(v, str) and not v.startswith("["):
            return [int(i.strip()) for i in v.split(",") if i.strip()]
        return v

    # Queue
    WAIT_TIME_MIN_SAMPLES: int = 3

    # Public links
    PUBLIC_TOKEN_BYTES: int = 24

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra='ignore')

settings = Settings()
