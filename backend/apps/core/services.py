"""
Base service classes for marketplace functionality
"""

import logging
from typing import Dict, List, Optional

from .exceptions import (
    Conflict, MarketplaceException, ResourceNotFound, ValidationFailed
)


class ServiceError(Exception):
    """Base exception for service layer errors"""

    api_exception = MarketplaceException

    def __init__(self, message: str, details: Optional[Dict] = None, original_error: Optional[Exception] = None):
        self.message = message
        self.details = details or {}
        self.original_error = original_error
        super().__init__(self.message)

    def to_api_exception(self) -> MarketplaceException:
        """Convert to the matching API exception for views"""
        return self.api_exception(self.message)


class ValidationError(ServiceError):
    """Exception for validation errors in services"""
    api_exception = ValidationFailed


class NotFoundError(ServiceError):
    """Exception for when requested resource is not found"""
    api_exception = ResourceNotFound


class ConflictError(ServiceError):
    """Exception for state conflicts"""
    api_exception = Conflict


class BaseService:
    """Base service class for all marketplace services"""

    def __init__(self):
        self.logger = logging.getLogger(f"apps.{self.__class__.__name__}")

    def log_info(self, message: str, context: Optional[Dict] = None):
        """Log informational message with context"""
        self.logger.info(message, extra={'context': context or {}})

    def log_warning(self, message: str, context: Optional[Dict] = None):
        """Log warning message with context"""
        self.logger.warning(message, extra={'context': context or {}})

    def log_error(self, message: str, error: Optional[Exception] = None, context: Optional[Dict] = None):
        """Log error message with context"""
        self.logger.error(
            message,
            extra={
                'context': context or {},
                'error': str(error) if error else None
            },
            exc_info=bool(error)
        )

    def validate_required_fields(self, data: Dict, required_fields: List[str]) -> bool:
        """Validate that required fields are present in data"""
        missing_fields = [field for field in required_fields if not data.get(field)]
        if missing_fields:
            raise ValidationError(f"Missing required fields: {', '.join(missing_fields)}")
        return True
