# paxcore/core/logging/setup.py
from __future__ import annotations
import logging
import logging.handlers
from pathlib import Path

from .formatters import DevFormatter, JsonFormatter

__all__ = [
    "NO_PROPAGATE",
    "configureLogging",
    "getLogger",
]



# Disable propagation from noisy libraries
NO_PROPAGATE = [
    "concurrent.futures", "asyncio",
]



def configureLogging(*, devMode: bool = True, logFile: str | Path | None = None) -> logging.Logger:
    """
    Initiate the global logging configuration for an embedding application.

    Dev:
      - Console pretty logs (DEBUG)
      - JSON file log (DEBUG) when logFile is given

    Prod:
      - Console INFO
      - JSON file logs INFO with rotation when logFile is given
    """
    rootLevel = logging.DEBUG if devMode else logging.INFO

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(rootLevel)

    for name in NO_PROPAGATE:
        logging.getLogger(name).propagate = False

    consoleHandler = logging.StreamHandler()
    consoleHandler.setLevel(rootLevel)
    consoleHandler.setFormatter(DevFormatter())
    root.addHandler(consoleHandler)

    if logFile is not None:
        logPath = Path(logFile)
        logPath.parent.mkdir(parents=True, exist_ok=True)
        fileHandler = logging.handlers.RotatingFileHandler(
            logPath,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8"
        )
        fileHandler.setLevel(rootLevel)
        fileHandler.setFormatter(JsonFormatter())
        root.addHandler(fileHandler)

    return root



def getLogger(name: str, side: str = ""):
    return logging.getLogger(f"{str(side).strip()}.{str(name).strip()}" if str(side).strip() else str(name).strip())
