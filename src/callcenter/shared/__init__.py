"""
Shared utilities and infrastructure components (database, logging, exceptions).
"""
