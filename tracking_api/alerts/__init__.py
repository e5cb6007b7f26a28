from .aggregator import AggregatorConfig, AlertAggregator, AlertPolicy, AlertRecord

__all__ = ["AggregatorConfig", "AlertAggregator", "AlertPolicy", "AlertRecord"]
