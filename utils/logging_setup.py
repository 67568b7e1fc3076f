"""
Logging Setup
Configures loguru sinks from the logging config section
"""

import sys
from typing import Dict, Optional

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} - {message}"


def configure_logging(config: Optional[Dict] = None):
    """
    Replace the default sink with console and optional rotating file sinks

    Args:
        config: `logging` config section
    """
    config = config or {}

    logger.remove()
    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=config.get('level', 'INFO')
    )

    if config.get('file'):
        logger.add(
            config['file'],
            rotation=config.get('rotation', '1 day'),
            retention=config.get('retention', '7 days'),
            format=FILE_FORMAT,
            level=config.get('file_level', 'DEBUG')
        )
