"""
payroll_config -- deployment settings for the payroll system.

Responsibility:
    Reads one YAML settings file into a frozen ``PayrollSettings`` value:
    database connection options, log level, and the raw ``payroll`` and
    ``leave`` sections that ``PayrollConfig.from_dict`` and
    ``LeaveConfig.from_dict`` accept.

Architecture position:
    Configuration.  Sits above ``payroll_kernel`` and below
    ``payroll_modules``.  The kernel and engines never import from here;
    ``SessionContext.from_settings`` is the bridge into the services.

Failure modes:
    - ``FileNotFoundError`` -- settings file missing.
    - ``yaml.YAMLError`` -- malformed YAML.
    - ``ValueError`` -- unknown sections or keys, bad values.
"""

from payroll_config.settings import (
    DatabaseSettings,
    PayrollSettings,
    compute_checksum,
    load_settings,
    load_yaml_file,
    settings_from_dict,
)

__all__ = [
    "DatabaseSettings",
    "PayrollSettings",
    "compute_checksum",
    "load_settings",
    "load_yaml_file",
    "settings_from_dict",
]
