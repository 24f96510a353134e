from pydantic_settings import BaseSettings
from decimal import Decimal
from typing import Literal, Optional

class Settings(BaseSettings):
    # Application
    PROJECT_NAME: str = "Railway Reservation Ledger"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Persistence
    DATABASE_URL: str = "sqlite:///./reservation_ledger.db"
    SNAPSHOT_BACKEND: Literal["sql", "json"] = "sql"
    SNAPSHOT_PATH: str = "./reservation_snapshot.json"
    PNR_COUNTER_FILE: str = "./pnr_counter.txt"
    PNR_FLOOR: int = 100000000000

    # Booking rules
    CANCELLATION_REFUND_RATE: Decimal = Decimal("0.80")
    WAITLIST_REFUND_RATE: Decimal = Decimal("1.00")
    MAX_PASSENGERS_PER_BOOKING: int = 6
    MAX_GROUPS_PER_REQUEST: int = 5
    LAZY_PNR_ISSUANCE: bool = False

    # Payment simulator
    PAYMENT_SUCCESS_RATE: float = 0.8
    PAYMENT_SEED: Optional[int] = None

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "./logs"
    LOG_TO_FILE: bool = False

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
