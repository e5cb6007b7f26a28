from .feed_handler import SensorFeedHandler

__all__ = ["SensorFeedHandler"]
