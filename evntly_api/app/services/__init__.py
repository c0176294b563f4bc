"""
Service layer.

Each service encapsulates the business logic of one domain and talks
to SQLite through ``core.db``.  Services raise the exceptions from
``core.exceptions``; the API layer maps them to HTTP responses.
Outbound integrations (payment gateway, mail provider) are plain
objects passed to the services that use them.
"""
