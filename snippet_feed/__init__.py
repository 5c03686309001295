"""Feed aggregation and optimistic like/comment state engine."""

__version__ = "0.1.0"
