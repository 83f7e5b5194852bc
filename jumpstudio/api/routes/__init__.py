from . import generations, quotas

__all__ = ["generations", "quotas"]
