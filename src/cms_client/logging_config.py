"""
Logging setup for applications using the CMS client
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(settings: Optional[Dict[str, Any]] = None) -> logging.Logger:
    """
    Configure root logging from the [logging] configuration section

    Args:
        settings: Mapping with optional 'level' (name) and 'log_file' keys

    Returns:
        The package logger
    """
    settings = settings or {}
    level = getattr(logging, str(settings.get('level', 'INFO')).upper(), logging.INFO)

    handlers = [logging.StreamHandler()]
    log_file = settings.get('log_file')
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    logger = logging.getLogger('cms_client')
    logger.setLevel(level)
    return logger
