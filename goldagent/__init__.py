"""GoldAgent - personal automation agent."""

__version__ = "0.1.0"
