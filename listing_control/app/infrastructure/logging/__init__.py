from .logger import configure_level, get_logger, log_event

__all__ = ["configure_level", "get_logger", "log_event"]
