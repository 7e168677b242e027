"""Quality gate — independent validators aggregated into one verdict."""

from vouch.gate.gate import ValidationGate, Validator
from vouch.gate.validators import (
    ArchitectureComplianceValidator,
    CodingStandardsValidator,
    ErrorHandlingValidator,
    SecurityPracticesValidator,
    default_validators,
)

__all__ = [
    "ArchitectureComplianceValidator",
    "CodingStandardsValidator",
    "ErrorHandlingValidator",
    "SecurityPracticesValidator",
    "ValidationGate",
    "Validator",
    "default_validators",
]
