"""
forge3d backend package.

Provides the REST API, Stripe payment handling and plan storage.
"""

__all__ = [
    "api",
    "payments",
    "database",
    "tokens",
]
