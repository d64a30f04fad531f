"""
MO Kernel - manufacturing order lifecycle core

Transactional bookkeeping for solar-panel manufacturing orders:
- Lock-serialized per-order sequence allocation
- Barcode encode/decode/validate
- Progress counters with before/after audit rows
- Append-only closure audit trail
"""

__version__ = "0.1.0"
