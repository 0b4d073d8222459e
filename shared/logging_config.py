"""
Logging configuration for the cephstack orchestrator.

Provides one logging setup shared by the CLI, the launcher script and the tests.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, TextIO, Union

DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(
    component_name: str,
    level: Union[int, str] = logging.INFO,
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
    stream: Optional[TextIO] = None,
):
    """
    Configure logging for an orchestrator component.
    
    Args:
        component_name: Component identifier (e.g., 'cephstack')
        level: Logging level, numeric or name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        format_string: Custom format string (default provided)
        stream: Console stream (default: stdout)
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    if format_string is None:
        format_string = f'[%(asctime)s] [{component_name.upper()}] %(levelname)s - %(message)s'
    
    handlers = [logging.StreamHandler(stream or sys.stdout)]

    # Add file handler if specified
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    formatter = logging.Formatter(format_string, datefmt=DATE_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)

    # Configure root logger; force replaces handlers left by an earlier call
    logging.basicConfig(level=level, handlers=handlers, force=True)
    
    logger = logging.getLogger(component_name)
    logger.info(f"{component_name.upper()} logging initialized (level={logging.getLevelName(level)})")
    
    return logger
