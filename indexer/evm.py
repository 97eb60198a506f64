# indexer/evm.py
"""
indexer.evm
Block range log indexing for EVM deployments of the protocol contract.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError
from eth_utils import keccak
from pydantic import ValidationError

from common.rpc import RpcTransport
from indexer.base import (
    ClientOptions,
    DecodeError,
    NetworkClient,
    NetworkKind,
    TransientError,
)
from indexer.cursor import BlockCursor, IndexingCursor, NoCursor
from indexer.jobs import IndexerJob, LogJob
from indexer.push import (
    Address,
    Asset,
    Case,
    CaseStatus,
    Category,
    EventName,
    PushData,
    PushEvent,
    PushPayload,
    Reporter,
    ReporterRole,
    ReporterStatus,
)

logger = logging.getLogger(__name__)

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")

REPORTER_STATE = "(uint128,address,string,string,uint8,uint8,uint256,uint256)"
CASE_STATE = "(uint128,string,uint128,uint8,string)"
ADDRESS_STATE = "(address,uint128,uint128,uint256,uint8,uint8)"
ASSET_STATE = "(address,uint256,uint128,uint128,uint256,uint8,uint8)"


@dataclass(frozen=True)
class EventSpec:
    name: EventName
    # canonical abi input types, indexed ones included, in declaration order
    inputs: str
    # record family the event decodes to, None when the event is not mapped
    record: Optional[str]

    @property
    def signature(self) -> str:
        # contract events carry the protocol event name verbatim
        return f"{self.name.value}({self.inputs})"

    @property
    def topic(self) -> str:
        return "0x" + keccak(text=self.signature).hex()


_REPORTER_INPUTS = "uint128,address,uint8"
_ADDRESS_INPUTS = "address,uint8,uint8"
_ASSET_INPUTS = "address,uint256,uint8,uint8"

EVENTS: Tuple[EventSpec, ...] = (
    EventSpec(EventName.INITIALIZE, "uint8", None),
    EventSpec(EventName.SET_AUTHORITY, "address", None),
    EventSpec(EventName.UPDATE_STAKE_CONFIGURATION, "address,uint256,uint256,uint256,uint256,uint256", None),
    EventSpec(EventName.UPDATE_REWARD_CONFIGURATION, "address,uint256,uint256,uint256,uint256", None),
    EventSpec(EventName.CREATE_REPORTER, _REPORTER_INPUTS, "reporter"),
    EventSpec(EventName.UPDATE_REPORTER, _REPORTER_INPUTS, "reporter"),
    EventSpec(EventName.ACTIVATE_REPORTER, _REPORTER_INPUTS, "reporter"),
    EventSpec(EventName.DEACTIVATE_REPORTER, _REPORTER_INPUTS, "reporter"),
    EventSpec(EventName.UNSTAKE, _REPORTER_INPUTS, "reporter"),
    EventSpec(EventName.CREATE_CASE, "uint128", "case"),
    EventSpec(EventName.UPDATE_CASE, "uint128", "case"),
    EventSpec(EventName.CREATE_ADDRESS, _ADDRESS_INPUTS, "address"),
    EventSpec(EventName.UPDATE_ADDRESS, _ADDRESS_INPUTS, "address"),
    EventSpec(EventName.CONFIRM_ADDRESS, _ADDRESS_INPUTS, "address"),
    EventSpec(EventName.CREATE_ASSET, _ASSET_INPUTS, "asset"),
    EventSpec(EventName.UPDATE_ASSET, _ASSET_INPUTS, "asset"),
    EventSpec(EventName.CONFIRM_ASSET, _ASSET_INPUTS, "asset"),
)

EVENTS_BY_TOPIC: Dict[str, EventSpec] = {spec.topic: spec for spec in EVENTS}
EVENTS_BY_NAME: Dict[EventName, EventSpec] = {spec.name: spec for spec in EVENTS}


def normalize_address(addr: str) -> str:
    """
    Returns lowercased 0x-prefixed 40-hex address or raises ValueError.
    Accepts inputs with extra whitespace/quotes.
    """
    if not addr:
        raise ValueError("Empty contract address.")
    a = str(addr).strip().strip('"').strip("'")
    h = a[2:] if a[:2] in ("0x", "0X") else a
    if len(h) != 40 or not _HEX_RE.match(h):
        raise ValueError(f"Invalid contract address: {addr!r} (need 20-byte hex)")
    return "0x" + h.lower()


def _strip_0x(s: str) -> str:
    return s[2:] if isinstance(s, str) and s[:2] in ("0x", "0X") else s


def _hex_bytes(value: Any) -> bytes:
    h = _strip_0x(value or "0x") or ""
    try:
        return bytes.fromhex(h)
    except ValueError as e:
        raise DecodeError(f"not a hex string: {value!r}") from e


def _topic_at(log: Dict[str, Any], index: int) -> bytes:
    topics = log.get("topics") or []
    if len(topics) <= index:
        raise DecodeError(f"log has {len(topics)} topics, topic {index} required")
    raw = _hex_bytes(topics[index])
    if len(raw) != 32:
        raise DecodeError(f"topic {index} is {len(raw)} bytes, expected 32")
    return raw


def topic_to_u128(topic: bytes) -> int:
    # ids are packed big endian into the low 16 bytes
    if any(topic[:16]):
        raise DecodeError("indexed id does not fit in 128 bits")
    return int.from_bytes(topic[16:], "big")


def topic_to_address(topic: bytes) -> str:
    if any(topic[:12]):
        raise DecodeError("indexed address has non zero padding")
    return "0x" + topic[12:].hex()


def _decode_body(log: Dict[str, Any], types: Sequence[str]) -> Tuple[Any, ...]:
    return tuple(decode(list(types), _hex_bytes(log.get("data"))))


class EvmClient(NetworkClient):
    kind = NetworkKind.EVM

    def __init__(self, options: ClientOptions, transport: Optional[RpcTransport] = None):
        super().__init__(options)
        self.contract = normalize_address(options.contract_address)
        self.page_size = options.page_size
        headers = {"Authorization": f"Bearer {options.api_token}"} if options.api_token else None
        self.rpc = transport or RpcTransport(
            options.rpc_url,
            timeout=options.timeout,
            max_retries=options.max_retries,
            backoff_seconds=options.backoff_seconds,
            backoff_cap=options.backoff_cap,
            headers=headers,
        )
        self._timestamps: Dict[int, int] = {}
        self._decoders = {
            "reporter": self._reporter_from_log,
            "case": self._case_from_log,
            "address": self._address_from_log,
            "asset": self._asset_from_log,
        }

    # ---------------- rpc surface ----------------

    def latest_block(self) -> int:
        return int(self.rpc.call("eth_blockNumber", []), 16)

    def fetch_logs(self, from_block: int, to_block: int) -> List[dict]:
        if from_block < 0 or to_block < from_block:
            raise ValueError("invalid block range")
        params = [{"address": self.contract, "fromBlock": hex(from_block), "toBlock": hex(to_block)}]
        result = self.rpc.call("eth_getLogs", params)
        if not isinstance(result, list):
            raise DecodeError("RPC response for eth_getLogs did not return a list")
        return result

    def block_timestamp(self, block_number: int) -> int:
        if block_number in self._timestamps:
            return self._timestamps[block_number]
        block = self.rpc.call("eth_getBlockByNumber", [hex(block_number), False])
        if not block:
            # the node has not caught up with the log it just served
            raise TransientError(f"block {block_number} not available yet")
        ts = int(block["timestamp"], 16)
        self._timestamps[block_number] = ts
        return ts

    def read_state(self, signature: str, arg_types: List[str], args: List[Any], out_type: str, block: int):
        data = keccak(text=signature)[:4] + encode(arg_types, args)
        result = self.rpc.call("eth_call", [{"to": self.contract, "data": "0x" + data.hex()}, hex(block)])
        raw = _hex_bytes(result)
        if not raw:
            raise DecodeError(f"{signature} returned no data at block {block}")
        return decode([out_type], raw)[0]

    # ---------------- contract ----------------

    def fetch_jobs(self, cursor: IndexingCursor) -> Tuple[List[IndexerJob], IndexingCursor]:
        if isinstance(cursor, NoCursor):
            from_block = 0
        elif isinstance(cursor, BlockCursor):
            from_block = cursor.height
        else:
            raise ValueError(f"EVM network needs a block cursor, got {cursor!r}")

        head = self.latest_block()
        if from_block > head:
            logger.debug("%s head %d behind cursor %d", self.network.value, head, from_block)
            return [], cursor

        to_block = min(from_block + self.page_size - 1, head)
        logs = self.fetch_logs(from_block, to_block)
        jobs = [LogJob(lg) for lg in logs if not lg.get("removed")]
        jobs.sort(key=lambda j: (j.block_number, j.log_index))
        self._timestamps.clear()

        logger.info("%s blocks %d..%d logs %d", self.network.value, from_block, to_block, len(jobs))
        return jobs, BlockCursor(to_block + 1)

    def handle_process(self, job: IndexerJob) -> Optional[List[PushPayload]]:
        if not isinstance(job, LogJob):
            raise self._mismatch(job)

        topics = job.log.get("topics") or []
        if not topics:
            raise DecodeError(f"log without topics tx={job.tx_hash}")
        spec = EVENTS_BY_TOPIC.get(str(topics[0]).lower())
        if spec is None:
            logger.warning("skip log with unknown topic %s tx=%s", topics[0], job.tx_hash)
            return None
        if spec.record is None:
            logger.debug("event %s is not mapped tx=%s", spec.name.value, job.tx_hash)
            return None

        block = job.block_number
        try:
            data = self._decoders[spec.record](job.log, block)
            event = PushEvent(
                name=spec.name,
                tx_hash=job.tx_hash,
                tx_index=job.log_index,
                block=block,
                timestamp=self.block_timestamp(block),
            )
        except (DecodingError, EncodingError, ValidationError, ValueError) as e:
            raise DecodeError(f"{spec.name.value} tx={job.tx_hash}: {e}") from e

        return [PushPayload(network=self.network.value, event=event, data=data)]

    # ---------------- decoders ----------------

    def _reporter_from_log(self, log: Dict[str, Any], block: int) -> PushData:
        reporter_id = topic_to_u128(_topic_at(log, 1))
        account, role = _decode_body(log, ("address", "uint8"))
        state = self.read_state("getReporter(uint128)", ["uint128"], [reporter_id], REPORTER_STATE, block)
        _, _, name, url, _, status, stake, unlock_timestamp = state
        return Reporter(
            id=reporter_id,
            account=account.lower(),
            role=ReporterRole.from_u8(role),
            status=ReporterStatus.from_u8(status),
            name=name,
            url=url,
            stake=stake,
            unlock_timestamp=unlock_timestamp,
        )

    def _case_from_log(self, log: Dict[str, Any], block: int) -> PushData:
        case_id = topic_to_u128(_topic_at(log, 1))
        state = self.read_state("getCase(uint128)", ["uint128"], [case_id], CASE_STATE, block)
        _, name, reporter_id, status, url = state
        return Case(
            id=case_id,
            name=name,
            url=url,
            status=CaseStatus.from_u8(status),
            reporter_id=reporter_id,
        )

    def _address_from_log(self, log: Dict[str, Any], block: int) -> PushData:
        address = topic_to_address(_topic_at(log, 1))
        risk, category = _decode_body(log, ("uint8", "uint8"))
        state = self.read_state("getAddress(address)", ["address"], [address], ADDRESS_STATE, block)
        _, case_id, reporter_id, confirmations, _, _ = state
        return Address(
            address=address,
            case_id=case_id,
            reporter_id=reporter_id,
            risk=risk,
            category=Category.from_u8(category),
            confirmations=confirmations,
        )

    def _asset_from_log(self, log: Dict[str, Any], block: int) -> PushData:
        address = topic_to_address(_topic_at(log, 1))
        asset_id, risk, category = _decode_body(log, ("uint256", "uint8", "uint8"))
        state = self.read_state(
            "getAsset(address,uint256)", ["address", "uint256"], [address, asset_id], ASSET_STATE, block
        )
        _, _, case_id, reporter_id, confirmations, _, _ = state
        return Asset(
            address=address,
            asset_id=str(asset_id),
            case_id=case_id,
            reporter_id=reporter_id,
            risk=risk,
            category=Category.from_u8(category),
            confirmations=confirmations,
        )
