"""
Data Quality Module
"""
from .errors import DataIntegrityError
from .validators import DataValidator, ValidationResult, ValidationSeverity, ValidationStatus

__all__ = [
    "DataIntegrityError",
    "DataValidator",
    "ValidationResult",
    "ValidationSeverity",
    "ValidationStatus",
]
