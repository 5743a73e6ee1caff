"""
CRM call-center backend: outbound call dispatch and per-agent call ledger.
"""

__version__ = "0.1.0"
