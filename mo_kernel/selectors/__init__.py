"""Selectors for the manufacturing order kernel (read side)."""

from mo_kernel.selectors.progress_selector import (
    PalletSummary,
    ProgressInputs,
    ProgressSelector,
    QualityStats,
)

__all__ = [
    "PalletSummary",
    "ProgressInputs",
    "ProgressSelector",
    "QualityStats",
]
