"""
Reference Data Package.

Static, read-only datasets loaded once at startup.

Modules:
- staking: Per-asset staking attributes (yield, ratio, fee, lock-up)
"""

from reference_data.staking import (
    ReferenceDataError,
    StakingDataset,
    StakingReference,
    load_dataset,
    load_default_dataset,
)

__all__ = [
    "ReferenceDataError",
    "StakingDataset",
    "StakingReference",
    "load_dataset",
    "load_default_dataset",
]
