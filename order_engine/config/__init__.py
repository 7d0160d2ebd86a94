from .settings import Config, TokenConfig

__all__ = ["Config", "TokenConfig"]
