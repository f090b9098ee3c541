"""
Structured Logging System for the GST Ledger service
Provides rotating file logs with immediate flush for real-time monitoring
"""
import logging
from pathlib import Path
from logging.handlers import RotatingFileHandler


class GSTLogger:
    """Centralized logging with rotation and component-prefixed messages"""

    def __init__(self, name="GST-Ledger", log_dir="logs", log_level="INFO"):
        """
        Initialize logger with rotating file handlers

        Args:
            name: Logger name
            log_dir: Directory for log files
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, log_level))
        self.logger.handlers.clear()
        self.logger.propagate = False

        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        log_format = logging.Formatter(
            '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        # 1. Main rotating file handler (10MB per file, keep 5 files)
        main_handler = RotatingFileHandler(
            log_path / 'gst_ledger.log',
            maxBytes=10*1024*1024,
            backupCount=5,
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

        # 3. Console
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(log_format)
        self.logger.addHandler(console_handler)

    def debug(self, message, component=""):
        self._log(logging.DEBUG, message, component)

    def info(self, message, component=""):
        self._log(logging.INFO, message, component)

    def warning(self, message, component=""):
        self._log(logging.WARNING, message, component)

    def error(self, message, component="", exc_info=False):
        self._log(logging.ERROR, message, component, exc_info=exc_info)

    def critical(self, message, component="", exc_info=False):
        self._log(logging.CRITICAL, message, component, exc_info=exc_info)

    def _log(self, level, message, component="", exc_info=False):
        """Internal logging method with component prefix"""
        if component:
            message = f"[{component}] {message}"

        self.logger.log(level, message, exc_info=exc_info)

        # Force immediate flush
        for handler in self.logger.handlers:
            handler.flush()

    def log_webhook(self, topic, shop, order_name):
        """Log an authenticated webhook delivery"""
        self.info(
            f"Webhook {topic} for {shop} - order {order_name or 'n/a'}",
            component="Webhook"
        )

    def log_pipeline_step(self, order_name, step, detail=""):
        """Log a step of the invoice pipeline"""
        suffix = f" - {detail}" if detail else ""
        self.info(f"Order {order_name} - {step}{suffix}", component="InvoicePipeline")

    def log_ledger_write(self, order_name, row_count, batch_count):
        """Log a ledger write"""
        self.info(
            f"Order {order_name} - Wrote {row_count} ledger row(s) in {batch_count} batch(es)",
            component="Ledger"
        )


# Global logger instance
_global_logger = None

def get_logger(log_level=None):
    """Get or create global logger instance"""
    global _global_logger
    if _global_logger is None:
        from gst_ledger import config
        _global_logger = GSTLogger(
            log_dir=config.LOG_DIR,
            log_level=log_level or config.LOG_LEVEL,
        )
    return _global_logger
