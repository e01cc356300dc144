from .validate import validate_settings

__all__ = ["validate_settings"]
