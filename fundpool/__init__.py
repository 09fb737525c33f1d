"""Pooled-funding contract: contributions, proposals, voting and payout selection, with binary state encoding."""

__version__ = "0.1.0"