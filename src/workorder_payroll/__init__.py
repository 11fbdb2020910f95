"""Field work order lifecycle and monthly payroll ledger."""

__version__ = "0.1.0"
