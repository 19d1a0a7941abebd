"""Warbook: a rules engine for rank-and-file miniatures battles."""

__version__ = "0.1.0"
