"""Exit codes shared by CLI commands."""

SYSTEM_EXIT_CODE = 1
VALIDATION_EXIT_CODE = 2
CONFIG_EXIT_CODE = 3
STORE_EXIT_CODE = 4

__all__ = ["CONFIG_EXIT_CODE", "STORE_EXIT_CODE", "SYSTEM_EXIT_CODE", "VALIDATION_EXIT_CODE"]
