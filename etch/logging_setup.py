# etch/logging_setup.py
"""structlog wiring for the `etch` logger hierarchy."""
import logging
import sys
import structlog

ETCH_LOGGER_NAME = "etch"

def configure_library_logging():
    # library use without configure_logging(): warnings and up only, through stdlib logging (stderr by default)
    if structlog.is_configured():
        return
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.WARNING),
        logger_factory=structlog.stdlib.LoggerFactory(),
    )

def configure_logging(log_level_str: str = "warning", json_logs: bool = False):
    # routes structlog through stdlib logging so library users keep control of handlers.
    log_level = getattr(logging, log_level_str.upper(), None)
    if not isinstance(log_level, int):
        log_level = logging.WARNING

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter_processors = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if json_logs:
        formatter_processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        formatter_processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=formatter_processors,
        foreign_pre_chain=[structlog.stdlib.add_log_level],
    )

    # rendered templates go to stdout; diagnostics stay on stderr.
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    etch_logger = logging.getLogger(ETCH_LOGGER_NAME)
    etch_logger.handlers.clear()
    etch_logger.addHandler(handler)
    etch_logger.setLevel(log_level)
    etch_logger.propagate = False

    structlog.get_logger(__name__).info("logging_configured", level=log_level_str, json_logs=json_logs)
