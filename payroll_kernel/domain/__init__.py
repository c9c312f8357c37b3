"""Pure domain value objects shared across the payroll engine (ZERO I/O)."""
