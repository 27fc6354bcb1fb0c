"""
Fiscal Kernel

Post-authorization event handling for electronic fiscal documents:
- Correction events (validation, signing, transmission, audit trail)
- Recovery of missing authorization protocol numbers
- Cached counterparty registration lookups
"""

__version__ = "0.1.0"
