from .reporter import LiveStatus

__all__ = ["LiveStatus"]
