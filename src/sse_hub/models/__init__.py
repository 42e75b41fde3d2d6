from .subscriber import Subscriber
from .stats import HubStats

__all__ = ["Subscriber", "HubStats"]
