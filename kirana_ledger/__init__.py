"""
Kirana Ledger - Source Package

A local-first ledger for small shops. Transactions are recorded instantly
on the device and reconciled with a shared remote ledger when connectivity
returns, so several devices can keep one ledger together.

DESIGN PRINCIPLES:
1. Recording never waits on the network
2. Deletes are visible immediately and never resurrected in-session
3. Degrade, don't crash (local-only mode is always available)
4. Every sync decision is logged
5. Storage backends are swappable
"""

__version__ = "1.0.0"
__author__ = "Kirana Ledger Team"
