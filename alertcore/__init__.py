"""
Alert notification policy and delivery.

Decides whether and when an operational alert becomes a user-facing
notification, given user preferences, OS permission state and rate limits,
and delivers each decision exactly once.
"""

__version__ = "1.0.0"
