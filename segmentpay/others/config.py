import logging
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

# Load environment variables
load_dotenv()

DEFAULT_FACILITATOR_URL = "https://x402.org/facilitator"

LOG_FORMAT = "%(levelname)s [%(asctime)s] %(name)s - %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() == "true"


class Settings(BaseModel):
    """Deployment configuration, read once from the environment."""

    price_per_segment: str = "$0.001"
    pay_to_address: Optional[str] = None
    network: str = "base-sepolia"
    facilitator_url: str = DEFAULT_FACILITATOR_URL
    cdp_client_key: str = ""
    demo_mode: bool = False
    segments_dir: Path = Path("segments")
    public_dir: Path = Path("public")
    verify_timeout_seconds: float = Field(default=30.0, gt=0)
    session_store: Literal["memory", "sqlite"] = "memory"
    session_db_path: Path = Path("data/sessions.db")
    host: str = "0.0.0.0"
    port: int = 3000

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_env(cls) -> "Settings":
        settings = cls(
            price_per_segment=os.getenv("PRICE_PER_SEGMENT", "$0.001"),
            pay_to_address=os.getenv("ADDRESS") or None,
            network=os.getenv("NETWORK", "base-sepolia"),
            facilitator_url=os.getenv("FACILITATOR_URL", DEFAULT_FACILITATOR_URL),
            cdp_client_key=os.getenv("CDP_CLIENT_KEY", ""),
            demo_mode=_env_flag("DEMO_MODE"),
            segments_dir=Path(os.getenv("SEGMENTS_DIR", "segments")),
            public_dir=Path(os.getenv("PUBLIC_DIR", "public")),
            verify_timeout_seconds=float(os.getenv("VERIFY_TIMEOUT_SECONDS", "30")),
            session_store=os.getenv("SESSION_STORE", "memory").lower(),
            session_db_path=Path(os.getenv("SESSION_DB_PATH", "data/sessions.db")),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3000")),
        )
        settings.validate_required()
        return settings

    def validate_required(self) -> None:
        # Bypass mode never talks to the facilitator, so it needs no receiver.
        if not self.demo_mode and not self.pay_to_address:
            raise ValueError("Missing required environment variables: ADDRESS")


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(format=LOG_FORMAT, datefmt=LOG_DATEFMT, level=level)
