# indexer/solana.py
"""
indexer.solana
Signature paging and Anchor instruction decoding for the Solana program.

Instructions are recognised by their 8 byte Anchor discriminator. The record
an instruction touches is read back from its program account and decoded
from Borsh.
"""
from __future__ import annotations

import base64
import hashlib
import logging
import struct
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import base58
from pydantic import ValidationError

from common.rpc import RpcTransport
from indexer.base import (
    ClientOptions,
    DecodeError,
    NetworkClient,
    NetworkKind,
    TransientError,
)
from indexer.cursor import IndexingCursor, NoCursor, TransactionCursor
from indexer.jobs import IndexerJob, TransactionJob
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

COMMITMENT = "confirmed"
SIGNATURE_BATCH = 1000  # node maximum for getSignaturesForAddress


def anchor_discriminator(namespace: str, name: str) -> bytes:
    return hashlib.sha256(f"{namespace}:{name}".encode()).digest()[:8]


class BorshReader:
    """Sequential little endian reader over Borsh encoded bytes."""

    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def _take(self, n: int) -> bytes:
        if self.pos + n > len(self.data):
            raise DecodeError(f"need {n} bytes at offset {self.pos}, have {len(self.data) - self.pos}")
        chunk = self.data[self.pos:self.pos + n]
        self.pos += n
        return chunk

    def u8(self) -> int:
        return self._take(1)[0]

    def u32(self) -> int:
        return struct.unpack("<I", self._take(4))[0]

    def u64(self) -> int:
        return struct.unpack("<Q", self._take(8))[0]

    def u128(self) -> int:
        return int.from_bytes(self._take(16), "little")

    def pubkey(self) -> str:
        return base58.b58encode(self._take(32)).decode("ascii")

    def string(self) -> str:
        length = self.u32()
        try:
            return self._take(length).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"invalid utf-8 string at offset {self.pos}") from e

    def fixed_str(self, size: int) -> str:
        # fixed byte arrays hold text padded with trailing zeros
        raw = self._take(size).rstrip(b"\x00")
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError("invalid utf-8 in fixed size field") from e


def _account_reader(data: bytes, account_type: str) -> BorshReader:
    if data[:8] != anchor_discriminator("account", account_type):
        raise DecodeError(f"account data is not a {account_type}")
    reader = BorshReader(data)
    reader.pos = 8
    return reader


def decode_reporter_account(data: bytes) -> Reporter:
    r = _account_reader(data, "Reporter")
    r.u8()  # bump
    reporter_id = r.u128()
    r.pubkey()  # network
    account = r.pubkey()
    name = r.string()
    role = r.u8()
    status = r.u8()
    stake = r.u64()
    unlock_timestamp = r.u64()
    url = r.string()
    return Reporter(
        id=reporter_id,
        account=account,
        role=ReporterRole.from_u8(role),
        status=ReporterStatus.from_u8(status),
        name=name,
        url=url,
        stake=stake,
        unlock_timestamp=unlock_timestamp,
    )


def decode_case_account(data: bytes) -> Case:
    r = _account_reader(data, "Case")
    r.u8()  # bump
    case_id = r.u128()
    r.pubkey()  # network
    name = r.string()
    reporter_id = r.u128()
    status = r.u8()
    url = r.string()
    return Case(id=case_id, name=name, url=url, status=CaseStatus.from_u8(status), reporter_id=reporter_id)


def decode_address_account(data: bytes) -> Address:
    r = _account_reader(data, "Address")
    r.u8()  # bump
    r.pubkey()  # network
    address = r.fixed_str(64)
    case_id = r.u128()
    reporter_id = r.u128()
    risk = r.u8()
    category = r.u8()
    confirmations = r.u64()
    return Address(
        address=address,
        case_id=case_id,
        reporter_id=reporter_id,
        risk=risk,
        category=Category.from_u8(category),
        confirmations=confirmations,
    )


def decode_asset_account(data: bytes) -> Asset:
    r = _account_reader(data, "Asset")
    r.u8()  # bump
    r.pubkey()  # network
    address = r.fixed_str(64)
    asset_id = r.fixed_str(64)
    case_id = r.u128()
    reporter_id = r.u128()
    risk = r.u8()
    category = r.u8()
    confirmations = r.u64()
    return Asset(
        address=address,
        asset_id=asset_id,
        case_id=case_id,
        reporter_id=reporter_id,
        risk=risk,
        category=Category.from_u8(category),
        confirmations=confirmations,
    )


RECORD_DECODERS: Dict[str, Callable[[bytes], PushData]] = {
    "reporter": decode_reporter_account,
    "case": decode_case_account,
    "address": decode_address_account,
    "asset": decode_asset_account,
}


@dataclass(frozen=True)
class InstructionSpec:
    name: str
    event: EventName
    record: Optional[str] = None
    # position of the record account in the instruction's account list
    account_index: Optional[int] = None

    @property
    def discriminator(self) -> bytes:
        return anchor_discriminator("global", self.name)


INSTRUCTIONS: Tuple[InstructionSpec, ...] = (
    InstructionSpec("create_network", EventName.INITIALIZE),
    InstructionSpec("set_authority", EventName.SET_AUTHORITY),
    InstructionSpec("update_stake_configuration", EventName.UPDATE_STAKE_CONFIGURATION),
    InstructionSpec("update_reward_configuration", EventName.UPDATE_REWARD_CONFIGURATION),
    InstructionSpec("create_reporter", EventName.CREATE_REPORTER, "reporter", 2),
    InstructionSpec("update_reporter", EventName.UPDATE_REPORTER, "reporter", 2),
    InstructionSpec("activate_reporter", EventName.ACTIVATE_REPORTER, "reporter", 5),
    InstructionSpec("deactivate_reporter", EventName.DEACTIVATE_REPORTER, "reporter", 2),
    InstructionSpec("unstake_reporter", EventName.UNSTAKE, "reporter", 5),
    InstructionSpec("create_case", EventName.CREATE_CASE, "case", 3),
    InstructionSpec("update_case", EventName.UPDATE_CASE, "case", 3),
    InstructionSpec("create_address", EventName.CREATE_ADDRESS, "address", 4),
    InstructionSpec("update_address", EventName.UPDATE_ADDRESS, "address", 4),
    InstructionSpec("confirm_address", EventName.CONFIRM_ADDRESS, "address", 5),
    InstructionSpec("create_asset", EventName.CREATE_ASSET, "asset", 4),
    InstructionSpec("update_asset", EventName.UPDATE_ASSET, "asset", 4),
    InstructionSpec("confirm_asset", EventName.CONFIRM_ASSET, "asset", 5),
)

INSTRUCTIONS_BY_DISCRIMINATOR: Dict[bytes, InstructionSpec] = {
    spec.discriminator: spec for spec in INSTRUCTIONS
}


def validate_pubkey(value: str) -> str:
    v = str(value or "").strip()
    try:
        raw = base58.b58decode(v)
    except ValueError as e:
        raise ValueError(f"Invalid program address: {value!r}") from e
    if len(raw) != 32:
        raise ValueError(f"Invalid program address: {value!r} (need 32 bytes)")
    return v


class SolanaClient(NetworkClient):
    kind = NetworkKind.SOLANA

    def __init__(self, options: ClientOptions, transport: Optional[RpcTransport] = None):
        super().__init__(options)
        self.program_id = validate_pubkey(options.contract_address)
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
        # oldest first signatures not yet handed out, and the signature they follow
        self._backlog: List[dict] = []
        self._backlog_after: Optional[str] = None

    # ---------------- rpc surface ----------------

    def fetch_signatures(self, until: Optional[str], before: Optional[str]) -> List[dict]:
        config: Dict[str, Any] = {"limit": SIGNATURE_BATCH, "commitment": COMMITMENT}
        if until:
            config["until"] = until
        if before:
            config["before"] = before
        result = self.rpc.call("getSignaturesForAddress", [self.program_id, config])
        if not isinstance(result, list):
            raise DecodeError("RPC response for getSignaturesForAddress did not return a list")
        return result

    def fetch_transaction(self, signature: str) -> dict:
        tx = self.rpc.call(
            "getTransaction",
            [signature, {"encoding": "json", "commitment": COMMITMENT, "maxSupportedTransactionVersion": 0}],
        )
        if tx is None:
            raise TransientError(f"transaction {signature} not available yet")
        return tx

    def fetch_account_data(self, pubkey: str) -> bytes:
        info = self.rpc.call("getAccountInfo", [pubkey, {"encoding": "base64", "commitment": COMMITMENT}])
        value = (info or {}).get("value")
        if value is None:
            raise DecodeError(f"account {pubkey} does not exist")
        if value.get("owner") != self.program_id:
            raise DecodeError(f"account {pubkey} is not owned by {self.program_id}")
        try:
            return base64.b64decode(value["data"][0])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise DecodeError(f"account {pubkey} has no base64 data") from e

    # ---------------- contract ----------------

    def fetch_jobs(self, cursor: IndexingCursor) -> Tuple[List[IndexerJob], IndexingCursor]:
        if isinstance(cursor, NoCursor):
            until = None
        elif isinstance(cursor, TransactionCursor):
            until = cursor.signature
        else:
            raise ValueError(f"Solana network needs a transaction cursor, got {cursor!r}")

        # a backlog is only valid for the position it was collected after
        if not self._backlog or self._backlog_after != until:
            self._backlog = self._walk_signatures(until)
            self._backlog_after = until

        if not self._backlog:
            return [], cursor

        page = self._backlog[:self.page_size]
        self._backlog = self._backlog[len(page):]
        self._backlog_after = page[-1]["signature"]

        jobs: List[IndexerJob] = [
            TransactionJob(sig["signature"], sig.get("slot"))
            for sig in page
            if sig.get("err") is None
        ]
        logger.info(
            "%s signatures %d failed %d pending %d",
            self.network.value, len(jobs), len(page) - len(jobs), len(self._backlog),
        )
        return jobs, TransactionCursor(page[-1]["signature"])

    def _walk_signatures(self, until: Optional[str]) -> List[dict]:
        """Every signature newer than `until`, oldest first."""
        collected: List[dict] = []
        before = None
        while True:
            batch = self.fetch_signatures(until, before)
            collected.extend(
                {"signature": s["signature"], "slot": s.get("slot"), "err": s.get("err")} for s in batch
            )
            if len(batch) < SIGNATURE_BATCH:
                break
            before = batch[-1]["signature"]
        collected.reverse()
        return collected

    def handle_process(self, job: IndexerJob) -> Optional[List[PushPayload]]:
        if not isinstance(job, TransactionJob):
            raise self._mismatch(job)

        tx = self.fetch_transaction(job.signature)
        meta = tx.get("meta") or {}
        if meta.get("err") is not None:
            logger.debug("skip failed transaction %s", job.signature)
            return None

        try:
            message = tx["transaction"]["message"]
            loaded = meta.get("loadedAddresses") or {}
            keys = list(message["accountKeys"]) + list(loaded.get("writable", [])) + list(loaded.get("readonly", []))
            instructions = message["instructions"]
        except (KeyError, TypeError) as e:
            raise DecodeError(f"transaction {job.signature} has no message") from e

        slot = tx.get("slot", job.slot) or 0
        payloads: List[PushPayload] = []
        for index, ix in enumerate(instructions):
            try:
                if keys[ix["programIdIndex"]] != self.program_id:
                    continue
                spec, accounts = self._parse_instruction(ix, keys)
                if spec is None:
                    continue
                if spec.record is None:
                    logger.debug("instruction %s is not mapped tx=%s", spec.name, job.signature)
                    continue
                data = self._read_record(spec, accounts)
                event = PushEvent(
                    name=spec.event,
                    tx_hash=job.signature,
                    tx_index=index,
                    block=slot,
                    timestamp=tx.get("blockTime"),
                )
            except (KeyError, IndexError, TypeError, ValidationError, ValueError) as e:
                raise DecodeError(f"instruction {index} tx={job.signature}: {e}") from e
            payloads.append(PushPayload(network=self.network.value, event=event, data=data))

        return payloads or None

    def _parse_instruction(self, ix: dict, keys: List[str]) -> Tuple[Optional[InstructionSpec], List[str]]:
        raw = base58.b58decode(ix.get("data") or "")
        if len(raw) < 8:
            raise DecodeError(f"instruction data too short ({len(raw)} bytes)")
        spec = INSTRUCTIONS_BY_DISCRIMINATOR.get(raw[:8])
        if spec is None:
            logger.warning("skip unknown instruction %s", raw[:8].hex())
            return None, []
        accounts = [keys[i] for i in ix.get("accounts", [])]
        return spec, accounts

    def _read_record(self, spec: InstructionSpec, accounts: List[str]) -> PushData:
        if spec.account_index is None or spec.account_index >= len(accounts):
            raise DecodeError(f"{spec.name} has {len(accounts)} accounts, record at {spec.account_index}")
        data = self.fetch_account_data(accounts[spec.account_index])
        return RECORD_DECODERS[spec.record](data)
