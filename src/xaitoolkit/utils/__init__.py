from .logging import configure_logging, setup_logger, log_execution
from .validation import ValidationError

__all__ = ['configure_logging', 'setup_logger', 'log_execution', 'ValidationError']
