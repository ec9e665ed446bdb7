# logger.py

import logging

# Structured JSON log format, every line carries the request_id of the request that produced it
LOG_FORMAT = '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", "request_id": "%(request_id)s"}'
DATE_FORMAT = '%Y-%m-%dT%H:%M:%S'


class RequestIdFilter(logging.Filter):
    """ Fill in request_id for records logged without one. """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = "N/A"
        return True


# Named logger instance
logger = logging.getLogger("ecommerce_api_logger")


def setup_logging(level: str = "INFO"):
    """ Attach the JSON handler to the named logger. Safe to call more than once. """
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        handler.addFilter(RequestIdFilter())
        logger.addHandler(handler)
        logger.propagate = False
    logger.setLevel(level.upper())


def log_info(message: str, request_id: str = "N/A"):
    logger.info(message, extra={"request_id": request_id})

def log_error(message: str, request_id: str = "N/A"):
    logger.error(message, extra={"request_id": request_id})

def log_debug(message: str, request_id: str = "N/A"):
    logger.debug(message, extra={"request_id": request_id})

def log_warning(message: str, request_id: str = "N/A"):
    logger.warning(message, extra={"request_id": request_id})
