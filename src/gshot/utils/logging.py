"""
Logging configuration for gshot.

This module provides centralized logging setup with:
- Structured logging through structlog
- Rich console output on stderr
- Optional rotating JSON log files
"""

import logging
import logging.handlers
import json
from pathlib import Path
from typing import Optional, Dict, Any
from datetime import datetime, timezone
import structlog
from rich.logging import RichHandler
from rich.console import Console


# Command output goes to stdout, diagnostics to stderr
console = Console(stderr=True)


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_obj = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
            'process': record.process,
        }

        # Add extra fields
        for key, value in record.__dict__.items():
            if key not in ('name', 'msg', 'args', 'created', 'filename',
                          'funcName', 'levelname', 'levelno', 'lineno',
                          'module', 'msecs', 'message', 'pathname', 'process',
                          'processName', 'relativeCreated', 'thread', 'threadName',
                          'exc_info', 'exc_text', 'stack_info', 'taskName'):
                try:
                    json.dumps(value)
                    log_obj[key] = value
                except (TypeError, ValueError):
                    log_obj[key] = str(value)

        if record.exc_info:
            log_obj['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_obj)


def setup_logging(
    app_name: str = "gshot",
    log_level: str = "WARNING",
    log_dir: Optional[Path] = None,
    enable_json: bool = False,
) -> Dict[str, Any]:
    """
    Set up logging for the command line tool.

    Args:
        app_name: Application name for log identification
        log_level: Console logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for rotating log files (no file logging if None)
        enable_json: Render structlog events as JSON instead of key=value

    Returns:
        Dictionary with the main logger and the effective configuration
    """
    renderer = structlog.processors.JSONRenderer() if enable_json else structlog.dev.ConsoleRenderer(colors=False)

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
            renderer
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # setup_logging runs again once configuration is loaded
        cache_logger_on_first_use=False,
    )

    level = getattr(logging, log_level.upper())

    root_logger = logging.getLogger()
    # File handlers want everything, the console handler filters by level
    root_logger.setLevel(logging.DEBUG if log_dir else level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = RichHandler(
        console=console,
        show_time=False,
        show_path=False,
        rich_tracebacks=True,
        tracebacks_suppress=["asyncio"],
    )
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter('%(message)s'))
    root_logger.addHandler(console_handler)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / f"{app_name}.log",
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        if enable_json:
            file_handler.setFormatter(JSONFormatter())
        else:
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
            ))
        root_logger.addHandler(file_handler)

    main_logger = structlog.get_logger(app_name)
    main_logger.debug(
        "logging_initialized",
        log_level=log_level,
        log_dir=str(log_dir) if log_dir else None,
        enable_json=enable_json,
    )

    return {
        'logger': main_logger,
        'log_dir': log_dir,
        'console': console,
        'config': {
            'app_name': app_name,
            'log_level': log_level,
            'enable_json': enable_json,
        }
    }


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance by name."""
    return structlog.get_logger(name)


__all__ = [
    'setup_logging',
    'get_logger',
    'JSONFormatter',
    'console',
]
