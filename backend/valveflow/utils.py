"""
utils.py — Logging Setup and Store Construction
================================================

Common helpers used by the service and the batch entry point.
"""

import logging
import os

from . import config


def setup_logging(level: str = None) -> None:
    """
    Configure console logging for the pipeline.

    All valveflow.* loggers inherit this configuration.

    Args:
        level: Log level string (DEBUG/INFO/WARNING/ERROR/CRITICAL).
               Defaults to config.LOG_LEVEL.
    """
    level = level or config.LOG_LEVEL
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(name)s] %(levelname)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    pkg_logger = logging.getLogger("valveflow")
    pkg_logger.setLevel(numeric_level)

    # Avoid duplicate handlers on repeated calls
    if not pkg_logger.handlers:
        pkg_logger.addHandler(handler)


def build_store():
    """
    Build the store used by the service and batch runner.

    Returns a FirebaseStore when a service account key is present,
    otherwise an empty InMemoryStore.
    """
    logger = logging.getLogger("valveflow.utils")
    if os.path.exists(config.FIREBASE_KEY_PATH):
        from .firebase_store import FirebaseStore, init_firebase_app

        init_firebase_app()
        return FirebaseStore()

    from .stores import InMemoryStore

    logger.warning(f"No Firebase key at {config.FIREBASE_KEY_PATH}, "
                   f"using in-memory store")
    return InMemoryStore()
