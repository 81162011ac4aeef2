from __future__ import annotations

import logging
import sys


def setup_logging(level: str = "INFO") -> None:
  """Configure root logging for the API process."""
  logging.basicConfig(
    level=getattr(logging, level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
  )


def get_logger(name: str) -> logging.Logger:
  return logging.getLogger(name)
