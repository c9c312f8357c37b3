"""
Payroll Kernel

Shared foundation for the payroll engine:
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging
- Roles, capabilities and workflow value objects
- Audit and notification sinks
- SQLAlchemy declarative base and engine management
"""

__version__ = "0.1.0"
