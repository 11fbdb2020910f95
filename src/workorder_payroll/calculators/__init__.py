"""Deduction and gross pay calculators."""

from workorder_payroll.calculators.deduction_catalog import (
    BracketLookupError,
    DeductionAmount,
    DeductionCatalog,
    DeductionConfigurationError,
    WageBracket,
)
from workorder_payroll.calculators.gross_salary import (
    Contribution,
    DataIntegrityError,
    GrossSalaryCalculator,
)

__all__ = [
    "BracketLookupError",
    "DeductionAmount",
    "DeductionCatalog",
    "DeductionConfigurationError",
    "WageBracket",
    "Contribution",
    "DataIntegrityError",
    "GrossSalaryCalculator",
]
