"""Configuration for the Gigboard job feed."""

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gigboard.feed.models import AlgorithmSettings

# Number of top-ranked slots treated as the front page
DEFAULT_FRONT_PAGE_SIZE = 20

# Bounds for the feed `limit` parameter
MIN_FEED_LIMIT = 1
MAX_FEED_LIMIT = 100

DEFAULT_ROTATION_HOURS = 8


@dataclass
class FeedConfig:
    """Tunable feed behaviour.

    The default algorithm fields describe the settings substituted when the
    settings store cannot be read.
    """

    front_page_size: int = DEFAULT_FRONT_PAGE_SIZE
    max_feed_limit: int = MAX_FEED_LIMIT
    default_algorithm_type: str = "newest_first"
    default_rotation_hours: float = DEFAULT_ROTATION_HOURS

    def __post_init__(self):
        if self.front_page_size < 1:
            raise ValueError("front_page_size must be at least 1")
        if self.max_feed_limit < MIN_FEED_LIMIT:
            raise ValueError("max_feed_limit must be at least 1")
        if self.default_rotation_hours <= 0:
            raise ValueError("default_rotation_hours must be positive")

    def default_settings(self) -> "AlgorithmSettings":
        """Settings used when the store is unavailable."""
        from gigboard.feed.models import AlgorithmSettings

        return AlgorithmSettings(
            algorithm_type=self.default_algorithm_type,
            is_enabled=True,
            rotation_hours=self.default_rotation_hours,
        )
