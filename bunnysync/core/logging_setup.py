from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
LOGGER_PREFIX = "bunnysync"


def setup_logging(level: str, logfile: str = ""):
    log_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(log_level)

    # Clear existing handlers to avoid duplicates when invoked more than once.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(LOG_FORMAT)

    if logfile:
        Path(logfile).parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile, encoding="utf-8")
        fh.setLevel(log_level)
        fh.setFormatter(fmt)
        root.addHandler(fh)

    ch = logging.StreamHandler()
    ch.setLevel(log_level)
    ch.setFormatter(fmt)
    root.addHandler(ch)

    # urllib3 logs every connection at DEBUG; keep it out of --verbose runs.
    logging.getLogger("urllib3").setLevel(max(log_level, logging.INFO))

    root.debug("logging initialized")


def log_to_logging(level: str, module: str, message: str, detail: Optional[str] = None):
    logging.getLogger(f"{LOGGER_PREFIX}.{module}").log(
        getattr(logging, level.upper(), logging.INFO),
        f"{message} {detail or ''}".strip(),
    )
