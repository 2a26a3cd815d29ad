"""Query trees, typo-tolerant matching and faceted filtering for a search engine core."""

__version__ = "0.1.0"