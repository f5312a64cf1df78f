import logging
import sys
import traceback
from pathlib import Path
from logging.handlers import RotatingFileHandler
import json

LOGS_DIR = Path("logs")
LOGS_DIR.mkdir(exist_ok=True)


class ColoredFormatter(logging.Formatter):
    """Colored level names for the terminal"""

    COLORS = {
        'DEBUG': '\033[36m',  # cyan
        'INFO': '\033[32m',  # green
        'WARNING': '\033[33m',  # yellow
        'ERROR': '\033[31m',  # red
        'CRITICAL': '\033[35m',  # magenta
        'RESET': '\033[0m'  # reset
    }

    def format(self, record):
        log_color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{log_color}{record.levelname}{self.COLORS['RESET']}"
        return super().format(record)


def setup_logger(
        name: str,
        log_file: str = None,
        level: int = logging.DEBUG,
        max_bytes: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5
) -> logging.Logger:
    """
    Build a logger writing to the console and, optionally, a rotating file.

    Args:
        name: logger name
        log_file: file name under logs/ (console only when None)
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        max_bytes: file size before rotation
        backup_count: number of rotated files to keep
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    logger.handlers.clear()

    log_format = '%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s'
    date_format = '%Y-%m-%d %H:%M:%S'

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_formatter = ColoredFormatter(log_format, datefmt=date_format)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    # plain formatter for files
    if log_file:
        file_path = LOGS_DIR / log_file
        file_handler = RotatingFileHandler(
            file_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(level)
        file_formatter = logging.Formatter(log_format, datefmt=date_format)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    return logger


class DatabaseLogger:
    """Logging for database writes"""

    def __init__(self, logger_name: str = "database"):
        self.logger = setup_logger(
            name=logger_name,
            log_file=f"{logger_name}.log"
        )

    def log_create(self, model_name: str, data: dict):
        self.logger.info(
            f"CREATE {model_name}:\n{json.dumps(data, ensure_ascii=False, indent=2, default=str)}"
        )

    def log_update(self, model_name: str, record_id: int, changes: dict):
        self.logger.info(
            f"UPDATE {model_name} (id={record_id}):\n"
            f"{json.dumps(changes, ensure_ascii=False, indent=2, default=str)}"
        )

    def log_error(self, operation: str, error: Exception):
        self.logger.error(
            f"DB ERROR in {operation}:\n"
            f"Error Type: {type(error).__name__}\n"
            f"Error Message: {str(error)}\n"
            f"Traceback:\n{traceback.format_exc()}"
        )


class DealLogger:
    """Logging for the deal lifecycle and the credit ledger"""

    def __init__(self, logger_name: str = "deal"):
        self.logger = setup_logger(
            name=logger_name,
            log_file=f"{logger_name}.log"
        )

    def log_transition(self, room_id: int, from_status: str, to_status: str, actor_id: int = None):
        actor = actor_id if actor_id is not None else "system"
        self.logger.info(f"🔁 TRANSITION: room={room_id}, {from_status} -> {to_status}, actor={actor}")

    def log_rejected(self, room_id: int, action: str, reason: str):
        self.logger.warning(f"⛔ REJECTED: room={room_id}, action={action}, reason={reason}")

    def log_ledger(self, supplier_id: int, entry_type: str, amount: int, balance_after: int):
        self.logger.info(
            f"💰 LEDGER: supplier={supplier_id}, type={entry_type}, "
            f"amount={amount}, balance_after={balance_after}"
        )

    def log_sweep(self, data: dict):
        self.logger.info(f"🧹 EXPIRY SWEEP:\n{json.dumps(data, ensure_ascii=False, indent=2)}")

    def log_error(self, context: str, error: Exception):
        self.logger.error(
            f"❌ DEAL ERROR in {context}:\n"
            f"Error Type: {type(error).__name__}\n"
            f"Error Message: {str(error)}\n"
            f"Traceback:\n{traceback.format_exc()}"
        )


db_logger = DatabaseLogger()
deal_logger = DealLogger()
app_logger = setup_logger("app", "app.log")
