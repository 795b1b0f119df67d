"""Logging configuration for the Gigboard backend."""

import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

_configured = False


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging once for the API process.

    Library loggers (``gigboard.*``) propagate here, so core feed messages
    share the backend format.
    """
    global _configured
    root = logging.getLogger()
    root.setLevel(level.upper())
    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    # Quiet chatty HTTP clients used by the Supabase SDK
    for noisy in ("httpx", "httpcore", "hpack"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a named logger."""
    return logging.getLogger(name)


_feed_logger = get_logger("gigboard.api.feed")
_application_logger = get_logger("gigboard.api.applications")


def log_feed_request(
    viewer_id: str | None,
    algorithm: str,
    enabled: bool,
    job_count: int,
    preview: bool = False,
) -> None:
    """Log a served feed."""
    _feed_logger.info(
        f"Feed served | viewer={viewer_id or 'anonymous'} | algorithm={algorithm} | "
        f"enabled={enabled} | jobs={job_count}" + (" | preview" if preview else "")
    )


def log_application_event(
    event: str,
    job_id: str,
    application_id: str | None,
    actor_id: str,
    success: bool,
    detail: str | None = None,
) -> None:
    """Log an application lifecycle event (apply, accept, reject, ...)."""
    message = (
        f"Application {event} | job={job_id} | application={application_id or '-'} | "
        f"actor={actor_id}"
    )
    if success:
        _application_logger.info(message)
    else:
        _application_logger.warning(f"{message} | FAILED: {detail or 'unknown'}")
