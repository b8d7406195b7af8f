"""
Structured logging setup.

Engine modules only call ``structlog.get_logger``; this module decides how those
events are rendered. Log events carry step numbers, rule ids and levels, never
raw utterances or profile details.

Importing ``triage`` installs a quiet default (warnings and above) so library use
prints nothing at info level. Hosts that want the full event stream call
``configure_logging``.
"""

import logging
import sys

import structlog

from triage.config import AppConfig, LoggingConfig, get_config


def _renderer(config: LoggingConfig) -> structlog.types.Processor:
    if config.format == "console":
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def configure_default_logging() -> None:
    """Keep engine loggers at warning level until the host configures logging."""
    if structlog.is_configured():
        return
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(logging.WARNING))


def configure_logging(config: AppConfig | None = None) -> None:
    """Configure stdlib logging and structlog from application config."""
    logging_config = (config or get_config()).logging

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, logging_config.level),
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _renderer(logging_config),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
