from __future__ import annotations

import logging
from pathlib import Path
from feedbrief.config.settings import get_settings

# chatty libraries that would otherwise log every request at INFO/DEBUG
QUIET_LOGGERS = ("urllib3", "requests")


def setup_logging(level: str | None = None) -> None:
    s = get_settings()
    log_path = s.log_file or "logs/run.log"

    Path(log_path).parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, (level or s.log_level).upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(message)s",
        handlers=[
            logging.FileHandler(log_path, encoding="utf-8"),
            logging.StreamHandler(),
        ],
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
