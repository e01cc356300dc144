from .responses import err, error_response, ok

__all__ = ["err", "error_response", "ok"]
