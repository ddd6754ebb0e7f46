import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def load_env():
    # load .env from the ROOT of the repo
    env_path = Path(__file__).resolve().parents[2] / ".env"
    load_dotenv(env_path)
    return os.getenv


@dataclass(frozen=True)
class Settings:
    db_path: str = "places.db"
    default_city: str = "Alexandria"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        getenv = load_env()
        return cls(
            db_path=getenv("PLACEDIR_DB_PATH", cls.db_path),
            default_city=getenv("PLACEDIR_DEFAULT_CITY", cls.default_city),
            log_level=getenv("PLACEDIR_LOG_LEVEL", cls.log_level).upper(),
        )
