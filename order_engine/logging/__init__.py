from .logger import logger, setup_logging, EngineLogger
from .decorators import log_timing

__all__ = ["logger", "setup_logging", "EngineLogger", "log_timing"]
