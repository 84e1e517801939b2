from . import ping, tickets

__all__ = ["ping", "tickets"]
