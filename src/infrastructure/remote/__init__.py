from .auth_client import RemoteAuthClient
from .engine import RemoteEngine

__all__ = ["RemoteAuthClient", "RemoteEngine"]
