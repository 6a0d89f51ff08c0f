import logging
import os
from typing import Optional


def setup_logging(level: Optional[str] = None) -> None:
    """Configure basic logging for all modules."""
    level_name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    numeric = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=numeric,
                        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
