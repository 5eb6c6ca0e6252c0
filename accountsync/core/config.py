from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional
from pathlib import Path
import os

class Settings(BaseSettings):
    APP_NAME: str = "accountsync"
    VERSION: str = "1.0.0"
    DATABASE_URL: str = os.getenv("ACCOUNTSYNC_DATABASE_URL", "sqlite:///./accountsync.db")
    SECRET_KEY: str = "accountsync-secret-key-change-me"
    DEBUG: bool = False
    AUTH_ENABLED: bool = True

    # SSH transport
    CONNECT_TIMEOUT: float = 15.0
    KNOWN_HOSTS: Optional[str] = None  # None disables host key verification
    DEFAULT_PRIVATE_KEY: Path = Path.home() / ".ssh" / "id_rsa"

    # Deadlines (seconds) for a single remote command and a whole reconcile
    COMMAND_TIMEOUT: float = 60.0
    OPERATION_TIMEOUT: float = 300.0

    # Account defaults mirrored from the target hosts' login.defs
    SYSTEM_ID_MAX: int = 1000
    DEFAULT_SHELL: str = "/bin/bash"

    class Config:
        env_file = ".env"
        env_prefix = "ACCOUNTSYNC_"

@lru_cache()
def get_settings():
    return Settings()
