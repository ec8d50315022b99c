import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

# Backend
BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:8000").rstrip("/")
BACKEND_TIMEOUT = float(os.getenv("BACKEND_TIMEOUT", "10"))

# Fixed identifiers sent with every request
ASSET = os.getenv("DASHBOARD_ASSET", "BTCUSDT")
TIMEFRAME = os.getenv("DASHBOARD_TIMEFRAME", "1h")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR = os.getenv("LOG_DIR", "logs")


@dataclass(frozen=True)
class Settings:
    backend_url: str = "http://localhost:8000"
    timeout: float = 10.0
    asset: str = "BTCUSDT"
    timeframe: str = "1h"

    @property
    def identifiers(self):
        return {"asset": self.asset, "timeframe": self.timeframe}


def load_settings() -> Settings:
    return Settings(
        backend_url=BACKEND_URL,
        timeout=BACKEND_TIMEOUT,
        asset=ASSET,
        timeframe=TIMEFRAME,
    )
