from .host import Host

__all__ = ["Host"]
