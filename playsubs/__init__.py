"""Subscription purchase reconciliation for Google Play Billing."""

__version__ = "0.1.0"
