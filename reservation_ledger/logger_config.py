"""Centralized logging configuration."""

import sys
from typing import Optional

from loguru import logger as loguru_logger

from reservation_ledger.config import Settings, settings

# Constants for extra fields
COMPONENT = 'component'
PNR = 'pnr'

log_format = ' | '.join(
    (
        '<lk>{time:YYYY-MM-DD HH:mm:ss.SSS}</>',
        '<lvl>{level:<8}</>',
        f'<lg>{{extra[{COMPONENT}]}}</> <c>{{name}}:{{function}}:{{line}}</>',
        f'<y>{{extra[{PNR}]}}</> {{message}}',
    )
)


def configure_logging(config: Optional[Settings] = None) -> None:
    """Install the console sink and, when enabled, the rotating file sink."""
    config = config or settings
    loguru_logger.remove()
    loguru_logger.configure(extra={COMPONENT: '', PNR: ''})
    loguru_logger.add(sys.stderr, format=log_format, level=config.LOG_LEVEL)

    if config.LOG_TO_FILE:
        loguru_logger.add(
            f'{config.LOG_DIR}/{{time:YYYY-MM-DD}}.log',
            format=log_format,
            level=config.LOG_LEVEL,
            rotation='1 day',
            retention='30 days',
            compression='zip',
            enqueue=True,
        )


def get_logger(component: str):
    """Logger bound to a component name, e.g. ``get_logger('inventory')``."""
    return loguru_logger.bind(**{COMPONENT: component, PNR: ''})


configure_logging()
