import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(log_level: str = "info") -> None:
    """Configure root logging once at process start."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # uvicorn's access log is noisy for the status poller
    logging.getLogger("uvicorn.access").setLevel(max(level, logging.WARNING))
