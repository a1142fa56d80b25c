import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Third-party loggers that log every outbound request at INFO.
_NOISY_LOGGERS = ("stripe", "urllib3")


def configure_logging(level: str = "INFO") -> None:
    """Configure process-wide logging for the billing API."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
