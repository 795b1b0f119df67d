"""
Gigboard - job feed ranking and rotation for a worker marketplace.

Ranks the open-jobs feed, tracks front-page rotation and guards worker
capacity for job applications.
"""

from .config import FeedConfig
from .feed import JobFeedService

try:
    from importlib.metadata import version

    __version__ = version("gigboard")
except Exception:
    __version__ = "0.0.0"

__all__ = ["FeedConfig", "JobFeedService"]
