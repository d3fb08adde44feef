"""Models package initialization"""
from before_send.models.check import MessageCheck

__all__ = ["MessageCheck"]
