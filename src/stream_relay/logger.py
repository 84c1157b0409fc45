import logging
import sys
from datetime import datetime, timezone

from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    Custom JSON formatter ensuring consistent fields for all logs.
    Adds `timestamp` and ensures `level` is uppercase.
    """
    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        if not log_record.get('timestamp'):
            log_record['timestamp'] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        if log_record.get('level'):
            log_record['level'] = log_record['level'].upper()
        else:
            log_record['level'] = record.levelname


def setup_logging(level=logging.INFO, service_name="stream-relay"):
    """
    Configures the root logger with the CustomJsonFormatter.
    Call this once at application startup.
    """
    logger = logging.getLogger()
    # Remove existing handlers to avoid duplicates if called multiple times
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        '%(timestamp)s %(level)s %(name)s %(message)s',
        static_fields={"service": service_name},
        json_ensure_ascii=False,
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(level)


# Create a module-level logger for internal use
logger = logging.getLogger("stream_relay")
