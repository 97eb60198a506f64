import os
from typing import Any, Optional

from pydantic import BaseModel, ValidationError, field_validator

DEFAULT_PAGE_SIZE = 500


def resolve_page_size(value: Any, default: int = DEFAULT_PAGE_SIZE) -> int:
    """Coerce a page size override, falling back to the default when it is unusable."""
    if value is None or isinstance(value, bool):
        return default
    try:
        n = int(str(value).strip())
    except ValueError:
        return default
    return n if n > 0 else default


class RPC(BaseModel):
    url: str
    api_token: Optional[str] = None
    timeout: float = 30.0
    max_retries: int = 3
    backoff_seconds: float = 0.5
    backoff_cap: float = 8.0

    @field_validator("url")
    @classmethod
    def must_be_http(cls, v: str) -> str:
        # allow placeholder during tests by swapping in a safe default
        if "${" in v:
            return "https://example.invalid"
        if not v.startswith(("https://", "http://")):
            raise ValueError("RPC URL must be http(s)")
        return v

    @field_validator("api_token")
    @classmethod
    def drop_placeholder(cls, v: Optional[str]) -> Optional[str]:
        if v is None or "${" in v or not v.strip():
            return None
        return v


class Retry(BaseModel):
    initial_delay: float = 1.0
    factor: float = 2.0
    max_delay: float = 60.0


class IndexerCfg(BaseModel):
    page_size: int = DEFAULT_PAGE_SIZE
    interval_ms: int = 100
    retry: Retry = Retry()

    @field_validator("page_size", mode="before")
    @classmethod
    def lenient_page_size(cls, v: Any) -> int:
        return resolve_page_size(v)


class CheckpointCfg(BaseModel):
    file: str = "checkpoint.json"


class Push(BaseModel):
    url: Optional[str] = None
    token: Optional[str] = None
    timeout: float = 10.0

    @field_validator("url", "token")
    @classmethod
    def drop_placeholder(cls, v: Optional[str]) -> Optional[str]:
        if v is None or "${" in v or not v.strip():
            return None
        return v


class Settings(BaseModel):
    network: str = "ethereum"
    contract_address: str
    rpc: RPC
    indexer: IndexerCfg = IndexerCfg()
    checkpoint: CheckpointCfg = CheckpointCfg()
    push: Push = Push()
    log_level: str = "INFO"


def load_settings(path: str = "config.yaml") -> Settings:
    import yaml
    with open(path, "r") as f:
        cfg = yaml.safe_load(f) or {}

    # allow secure override via env at runtime
    env_rpc = os.environ.get("RPC_URL_OVERRIDE")
    if env_rpc:
        cfg.setdefault("rpc", {})["url"] = env_rpc
    env_token = os.environ.get("RPC_API_TOKEN")
    if env_token:
        cfg.setdefault("rpc", {})["api_token"] = env_token
    env_contract = os.environ.get("CONTRACT_ADDRESS")
    if env_contract:
        cfg["contract_address"] = env_contract
    env_network = os.environ.get("INDEXER_NETWORK")
    if env_network:
        cfg["network"] = env_network
    env_push = os.environ.get("PUSH_URL")
    if env_push:
        cfg.setdefault("push", {})["url"] = env_push
    if "INDEXER_PAGE_SIZE" in os.environ:
        indexer = cfg.get("indexer") or {}
        indexer["page_size"] = os.environ["INDEXER_PAGE_SIZE"]
        cfg["indexer"] = indexer

    try:
        return Settings.model_validate(cfg)
    except ValidationError as e:
        raise RuntimeError(f"Configuration error in {path}: {e}") from e
