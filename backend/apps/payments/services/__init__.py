"""
Payment services: initiation with providers and callback reconciliation.
"""

from .initiation import PaymentInitiationService, payment_initiation_service  # noqa: F401
from .reconciliation import (  # noqa: F401
    Outcome, ReconciliationService, SignatureError, reconciliation_service
)
