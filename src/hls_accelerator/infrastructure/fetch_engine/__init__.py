from .aria2 import Aria2Client

__all__ = ["Aria2Client"]
