# indexer/push.py
"""
indexer.push
Normalized, chain independent records handed to the delivery sink.
"""
from __future__ import annotations

import json
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

U128_MAX = 2 ** 128 - 1


class _U8Enum(str, Enum):
    """String enum whose on-chain encoding is the member's position."""

    @classmethod
    def from_u8(cls, value: int):
        members = list(cls)
        if not isinstance(value, int) or not 0 <= value < len(members):
            raise ValueError(f"{cls.__name__} has no variant {value!r}")
        return members[value]

    def to_u8(self) -> int:
        return list(type(self)).index(self)


class ReporterRole(_U8Enum):
    VALIDATOR = "validator"
    TRACER = "tracer"
    PUBLISHER = "publisher"
    AUTHORITY = "authority"


class ReporterStatus(_U8Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    UNSTAKING = "unstaking"


class CaseStatus(_U8Enum):
    CLOSED = "closed"
    OPEN = "open"


class Category(_U8Enum):
    NONE = "none"
    WALLET_SERVICE = "wallet_service"
    MERCHANT_SERVICE = "merchant_service"
    MINING_POOL = "mining_pool"
    EXCHANGE = "exchange"
    DEFI = "defi"
    OTC_BROKER = "otc_broker"
    ATM = "atm"
    GAMBLING = "gambling"
    ILLICIT_ORGANIZATION = "illicit_organization"
    MIXER = "mixer"
    DARKNET_SERVICE = "darknet_service"
    SCAM = "scam"
    RANSOMWARE = "ransomware"
    THEFT = "theft"
    COUNTERFEIT = "counterfeit"
    TERRORIST_FINANCING = "terrorist_financing"
    SANCTIONS = "sanctions"
    CHILD_ABUSE = "child_abuse"
    HACKER = "hacker"
    HIGH_RISK_JURISDICTION = "high_risk_jurisdiction"


class EventName(str, Enum):
    INITIALIZE = "Initialize"
    SET_AUTHORITY = "SetAuthority"
    UPDATE_STAKE_CONFIGURATION = "UpdateStakeConfiguration"
    UPDATE_REWARD_CONFIGURATION = "UpdateRewardConfiguration"
    CREATE_REPORTER = "CreateReporter"
    UPDATE_REPORTER = "UpdateReporter"
    ACTIVATE_REPORTER = "ActivateReporter"
    DEACTIVATE_REPORTER = "DeactivateReporter"
    UNSTAKE = "Unstake"
    CREATE_CASE = "CreateCase"
    UPDATE_CASE = "UpdateCase"
    CREATE_ADDRESS = "CreateAddress"
    UPDATE_ADDRESS = "UpdateAddress"
    CONFIRM_ADDRESS = "ConfirmAddress"
    CREATE_ASSET = "CreateAsset"
    UPDATE_ASSET = "UpdateAsset"
    CONFIRM_ASSET = "ConfirmAsset"


U128 = Annotated[int, Field(ge=0, le=U128_MAX)]


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class Reporter(_Record):
    kind: Literal["reporter"] = "reporter"
    id: U128
    account: str
    role: ReporterRole
    status: ReporterStatus
    name: str = ""
    url: str = ""
    stake: int = Field(default=0, ge=0)
    unlock_timestamp: int = Field(default=0, ge=0)


class Case(_Record):
    kind: Literal["case"] = "case"
    id: U128
    status: CaseStatus
    name: str = ""
    url: str = ""
    reporter_id: U128


class Address(_Record):
    kind: Literal["address"] = "address"
    address: str
    case_id: U128
    reporter_id: U128
    risk: int = Field(ge=0, le=10)
    category: Category
    confirmations: int = Field(default=0, ge=0)


class Asset(_Record):
    kind: Literal["asset"] = "asset"
    address: str
    asset_id: str
    case_id: U128
    reporter_id: U128
    risk: int = Field(ge=0, le=10)
    category: Category
    confirmations: int = Field(default=0, ge=0)


PushData = Union[Reporter, Case, Address, Asset]


class PushEvent(_Record):
    """Provenance of one protocol event."""
    name: EventName
    tx_hash: str
    tx_index: int = Field(ge=0)
    block: int = Field(ge=0)
    timestamp: Optional[int] = None


class PushPayload(_Record):
    network: str
    event: PushEvent
    data: PushData = Field(discriminator="kind")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @property
    def dedupe_key(self) -> str:
        """Stable key a sink can use to drop redelivered payloads."""
        return f"{self.network}:{self.event.tx_hash}:{self.event.tx_index}"
