"""
Cross-cutting infrastructure: configuration, logging, database access,
security dependencies and the domain exception hierarchy.
"""
