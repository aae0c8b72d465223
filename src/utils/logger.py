"""
Structured Logging System for Menu Pal
Provides rotating file logs with immediate flush for real-time monitoring
"""
import logging
from pathlib import Path
from logging.handlers import RotatingFileHandler

import config


class MenuPalLogger:
    """Centralized logging for Menu Pal with rotation and formatting"""

    def __init__(self, name="Menu-Pal", log_dir=None, log_level="INFO"):
        """
        Initialize logger with rotating file handlers

        Args:
            name: Logger name
            log_dir: Directory for log files (defaults to config.LOG_FOLDER)
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

        # Clear any existing handlers
        self.logger.handlers.clear()
        self.logger.propagate = False

        log_path = Path(log_dir or config.LOG_FOLDER)
        log_path.mkdir(parents=True, exist_ok=True)

        log_format = logging.Formatter(
            '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        # 1. Main rotating file handler
        main_handler = RotatingFileHandler(
            log_path / 'menu_pal.log',
            maxBytes=config.LOG_FILE_MAX_MB * 1024 * 1024,
            backupCount=config.LOG_FILE_BACKUP_COUNT,
            encoding='utf-8'
        )
        main_handler.setLevel(logging.DEBUG)
        main_handler.setFormatter(log_format)
        self.logger.addHandler(main_handler)

        # 2. Error-only log file (5MB per file, keep 3 files)
        error_handler = RotatingFileHandler(
            log_path / 'errors.log',
            maxBytes=5*1024*1024,
            backupCount=3,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(log_format)
        self.logger.addHandler(error_handler)

        # 3. Console handler
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(log_format)
        self.logger.addHandler(console_handler)

    def debug(self, message, component=""):
        """Log debug message"""
        self._log(logging.DEBUG, message, component)

    def info(self, message, component=""):
        """Log info message"""
        self._log(logging.INFO, message, component)

    def warning(self, message, component=""):
        """Log warning message"""
        self._log(logging.WARNING, message, component)

    def error(self, message, component="", exc_info=False):
        """Log error message"""
        self._log(logging.ERROR, message, component, exc_info=exc_info)

    def critical(self, message, component="", exc_info=False):
        """Log critical message"""
        self._log(logging.CRITICAL, message, component, exc_info=exc_info)

    def _log(self, level, message, component="", exc_info=False):
        """Internal logging method with component prefix"""
        if component:
            message = f"[{component}] {message}"

        self.logger.log(level, message, exc_info=exc_info)

        # Force immediate flush
        for handler in self.logger.handlers:
            handler.flush()

    def log_extraction_start(self, generation, image_count, target_language):
        """Log menu extraction start"""
        self.info(
            f"Session {generation} - Extracting {image_count} image(s) into {target_language}",
            component="Extraction"
        )

    def log_extraction_complete(self, generation, item_count, processing_time, usage=None):
        """Log menu extraction completion"""
        tokens = f" - {usage.total_token_count} tokens" if usage else ""
        self.info(
            f"Session {generation} - Extracted {item_count} item(s) in {processing_time:.2f}s{tokens}",
            component="Extraction"
        )

    def log_retry(self, attempt, max_retries, delay, error):
        """Log a retried upstream call"""
        self.warning(
            f"Attempt {attempt}/{max_retries} failed ({error.kind}): {error.message} - retrying in {delay:.1f}s",
            component="Retry"
        )

    def log_error(self, context, error_type, error_message):
        """Log error with context"""
        self.error(
            f"{context} - {error_type}: {error_message}",
            component="Error"
        )


# Global logger instance
_global_logger = None

def get_logger(log_level=None):
    """Get or create global logger instance"""
    global _global_logger
    if _global_logger is None:
        _global_logger = MenuPalLogger(log_level=log_level or config.LOG_LEVEL)
    return _global_logger
