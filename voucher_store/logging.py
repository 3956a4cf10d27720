"""
Logging configuration: root handler on stdout, uvicorn and app loggers aligned.
Unexpected failures are logged with log.exception; absorbed ones (notifier,
invoice retry, poll-path gateway errors) with log.warning.
"""
import logging
import sys


def setup_logging(
    level: int | str = logging.INFO,
    format_string: str | None = None,
) -> None:
    if format_string is None:
        format_string = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=format_string,
        stream=sys.stdout,
        force=True,
    )
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        log = logging.getLogger(name)
        if level is not None:
            log.setLevel(level)
    logging.getLogger("vouchers").setLevel(level)
