"""
Services for the e-commerce module.
"""

from .order import OrderService, order_service  # noqa: F401
