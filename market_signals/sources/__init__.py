"""Pluggable data sources and the concurrent aggregator that fans out to them."""

from .base import DataSource, MockDataSource  # noqa: F401
from .aggregator import DataAggregator  # noqa: F401
