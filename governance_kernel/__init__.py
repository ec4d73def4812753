"""
Governance Kernel

Core of the architectural-review workflow:
- Versioned status graphs with role allow-lists
- Compare-and-swap status writes
- Per-stage, per-cycle vote storage
- Notification debounce bookkeeping
"""

__version__ = "0.1.0"
