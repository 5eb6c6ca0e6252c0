import logging
import sys
from typing import Optional

from accountsync.core.config import get_settings

settings = get_settings()

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("asyncssh", "uvicorn.access", "sqlalchemy.engine")


def setup_logging(level: Optional[int] = None) -> None:
    """Configures stdout logging for the service.

    Reconciler mutations log at INFO, remote reads at DEBUG. ACCOUNTSYNC_DEBUG
    switches the root logger to DEBUG so every ``getent``/``id`` call shows.
    """
    if level is None:
        level = logging.DEBUG if settings.DEBUG else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # setup_logging may run again under uvicorn reload
    if not root_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.info(f"Logging initialized with level: {logging.getLevelName(level)}")
