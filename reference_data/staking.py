"""
Reference Data - Staking attributes.

============================================================
RESPONSIBILITY
============================================================
Static per-asset staking attributes the price provider does
not expose (yield, participation, fee, lock-up, minimum).

- Loaded once at process start from a versioned YAML table
- Immutable afterwards; shared without locking
- Consumed by the scoring engine and market listing

============================================================
FILE FORMAT
============================================================
    version: 1
    assets:
      ethereum: {apy: 3.13, staking_ratio: 30.46, validator_fee: 0,
                 unbonding_days: 27, min_stake: 32}

============================================================
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional, Tuple, Union

import yaml


logger = logging.getLogger(__name__)

DEFAULT_DATA_FILE = "staking_rewards.yaml"


class ReferenceDataError(ValueError):
    """The reference table is malformed."""


@dataclass(frozen=True)
class StakingReference:
    """Staking attributes of one asset."""
    apy: Decimal
    """Yearly staking yield, percent."""
    
    staking_ratio: Decimal
    """Share of circulating supply staked, percent."""
    
    validator_fee: Decimal = Decimal("0")
    unbonding_days: int = 0
    min_stake: Decimal = Decimal("0")
    
    @classmethod
    def from_dict(cls, asset_id: str, data: Mapping[str, Any]) -> "StakingReference":
        """Build from one YAML row."""
        try:
            return cls(
                apy=Decimal(str(data["apy"])),
                staking_ratio=Decimal(str(data["staking_ratio"])),
                validator_fee=Decimal(str(data.get("validator_fee", 0))),
                unbonding_days=int(data.get("unbonding_days", 0)),
                min_stake=Decimal(str(data.get("min_stake", 0))),
            )
        except KeyError as e:
            raise ReferenceDataError(f"{asset_id}: missing field {e.args[0]!r}") from e
        except (InvalidOperation, TypeError, ValueError) as e:
            raise ReferenceDataError(f"{asset_id}: invalid value ({e})") from e


class StakingDataset:
    """
    Read-only asset id -> StakingReference table.
    
    Iteration order is the order of the source table.
    """
    
    def __init__(
        self,
        entries: Mapping[str, StakingReference],
        version: Optional[int] = None,
    ) -> None:
        self._entries = MappingProxyType(dict(entries))
        self._version = version
    
    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "StakingDataset":
        """Build from a parsed document ({"version": ..., "assets": {...}})."""
        if not isinstance(data, Mapping) or not isinstance(data.get("assets"), Mapping):
            raise ReferenceDataError("reference table must contain an 'assets' mapping")
        
        entries = {}
        for asset_id, row in data["assets"].items():
            if not isinstance(row, Mapping):
                raise ReferenceDataError(f"{asset_id}: row must be a mapping")
            entries[str(asset_id)] = StakingReference.from_dict(str(asset_id), row)
        
        return cls(entries, version=data.get("version"))
    
    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "StakingDataset":
        """Load from a YAML file."""
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ReferenceDataError(f"{path}: not valid YAML ({e})") from e
        dataset = cls.from_mapping(data)
        logger.info(f"Loaded {len(dataset)} staking reference entries from {path}")
        return dataset
    
    @property
    def version(self) -> Optional[int]:
        return self._version
    
    def get(self, asset_id: str) -> Optional[StakingReference]:
        """Get the reference entry for an asset, if any."""
        return self._entries.get(asset_id)
    
    def asset_ids(self) -> Tuple[str, ...]:
        """All asset ids in table order."""
        return tuple(self._entries)
    
    def __contains__(self, asset_id: object) -> bool:
        return asset_id in self._entries
    
    def __len__(self) -> int:
        return len(self._entries)
    
    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)
    
    def __repr__(self) -> str:
        return f"<StakingDataset(entries={len(self)}, version={self._version})>"


def load_default_dataset() -> StakingDataset:
    """Load the staking table bundled with this package."""
    text = resources.files("reference_data").joinpath(DEFAULT_DATA_FILE).read_text(encoding="utf-8")
    dataset = StakingDataset.from_mapping(yaml.safe_load(text))
    logger.info(f"Loaded {len(dataset)} bundled staking reference entries")
    return dataset


def load_dataset(path: Optional[Union[str, Path]] = None) -> StakingDataset:
    """Load the table at ``path``, or the bundled one when no path is given."""
    if path:
        return StakingDataset.from_yaml(path)
    return load_default_dataset()
