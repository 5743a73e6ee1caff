"""
Telephony package.

Keep package import side-effects to a minimum to avoid circular imports.
Do not import factory/adapters here.
"""

__all__ = [
    "config",
    "factory",
    "interface",
    "phone",
]
