"""
Logging setup
"""
import logging

from app.core.config import settings


def setup_logging(level: str = None, fmt: str = None):
    """Configure the root logger once for the whole process"""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=fmt or settings.LOG_FORMAT,
    )
    # googleapiclient logs every discovery lookup at INFO
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)
