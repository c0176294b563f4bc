"""
Application package initializer.

The project is organised into ``core`` (configuration, database,
security, errors), ``schemas`` (Pydantic models), ``services``
(business logic) and ``api`` (versioned routers).
"""

from .main import app  # noqa: F401
