"""Models package."""

from .user import User
from .media_item import MediaItem
