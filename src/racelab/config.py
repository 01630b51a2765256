"""Configuration management for racelab."""

import math
import tempfile
import tomllib
from pathlib import Path

import tomli_w
from pydantic import BaseModel, Field, ValidationError, model_validator

from .constants import (
    CONFIG_FILENAME,
    DEFAULT_BUFFER_ATTEMPTS,
    DEFAULT_BUFFER_CAPACITY,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY_MS,
)
from .core.delay import DelayWindow


class ConfigError(Exception):
    """Configuration file unreadable or invalid."""


class DelayRange(BaseModel):
    """Bounds for a randomised delay, in milliseconds."""

    min_ms: float = Field(default=0.0, ge=0)
    max_ms: float = Field(default=0.0, ge=0)

    @model_validator(mode="after")
    def _check_order(self) -> "DelayRange":
        if self.min_ms > self.max_ms:
            raise ValueError(f"min_ms ({self.min_ms}) is greater than max_ms ({self.max_ms})")
        return self

    def window(self) -> DelayWindow:
        """Build a DelayWindow with these bounds."""
        return DelayWindow(self.min_ms, self.max_ms)


class PathsConfig(BaseModel):
    """Where run artifacts live."""

    work_dir: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()))
    lock_dir: Path | None = None  # Defaults to work_dir

    def get_lock_dir(self) -> Path:
        return self.lock_dir or self.work_dir


class LockConfig(BaseModel):
    """Retry policy for FileLock.acquire."""

    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=1)
    retry_delay_ms: float = Field(default=DEFAULT_RETRY_DELAY_MS, ge=0)


class HarnessConfig(BaseModel):
    """Orchestrator settings."""

    worker_timeout: float | None = Field(
        default=None, gt=0, description="Seconds to wait for all workers (None waits forever)"
    )


class CounterConfig(BaseModel):
    """Shared counter: every worker increments N times."""

    workers: int = Field(default=5, ge=1)
    increments: int = Field(default=20, ge=1)
    delta: int = 1
    initial: int = 0
    window: DelayRange = Field(default_factory=lambda: DelayRange(min_ms=0, max_ms=10))
    pause: DelayRange = Field(default_factory=lambda: DelayRange(min_ms=0, max_ms=5))


class BankConfig(BaseModel):
    """Bank account: concurrent withdrawals against one balance."""

    workers: int = Field(default=4, ge=1)
    amount: int = Field(default=300, ge=1)
    initial: int = Field(default=1000, ge=0)
    window: DelayRange = Field(default_factory=lambda: DelayRange(min_ms=0, max_ms=100))
    pause: DelayRange = Field(default_factory=lambda: DelayRange(min_ms=0, max_ms=50))


class InventoryConfig(BaseModel):
    """Inventory: concurrent purchases against one stock level."""

    customers: int = Field(default=15, ge=1)
    quantity: int = Field(default=1, ge=1)
    initial: int = Field(default=10, ge=0)
    product: str = "Laptop"
    stagger_ms: float = Field(default=10, ge=0)
    window: DelayRange = Field(default_factory=lambda: DelayRange(min_ms=0, max_ms=150))
    pause: DelayRange = Field(default_factory=lambda: DelayRange(min_ms=0, max_ms=100))


class BufferConfig(BaseModel):
    """Producer-consumer: items moved through a bounded buffer."""

    capacity: int = Field(default=DEFAULT_BUFFER_CAPACITY, ge=1)
    producers: int = Field(default=2, ge=1)
    consumers: int = Field(default=2, ge=1)
    items: int = Field(default=5, ge=1, description="Items each producer adds")
    initial: int = Field(default=0, ge=0, description="Items already buffered at start")
    max_attempts: int = Field(
        default=DEFAULT_BUFFER_ATTEMPTS, ge=1, description="Retries per item on full/empty"
    )
    window: DelayRange = Field(default_factory=lambda: DelayRange(min_ms=0, max_ms=20))
    pause: DelayRange = Field(default_factory=lambda: DelayRange(min_ms=0, max_ms=20))

    @model_validator(mode="after")
    def _check_initial(self) -> "BufferConfig":
        if self.initial > self.capacity:
            raise ValueError(f"initial ({self.initial}) exceeds capacity ({self.capacity})")
        return self

    def consumer_items(self, producers: int, consumers: int) -> int:
        """Items per consumer so consumers drain everything producers add, rounded up."""
        if consumers == 0:
            return 0
        return math.ceil((self.initial + producers * self.items) / consumers)


class TransferConfig(BaseModel):
    """Database transfer demo: money moved between two accounts."""

    workers: int = Field(default=5, ge=1)
    amount: int = Field(default=100, ge=1)
    initial: int = Field(default=1000, ge=0)
    source: str = "Alice"
    dest: str = "Bob"
    busy_timeout: float = Field(default=30.0, gt=0, description="SQLite lock wait in seconds")
    window: DelayRange = Field(default_factory=lambda: DelayRange(min_ms=0, max_ms=100))

    @model_validator(mode="after")
    def _check_accounts(self) -> "TransferConfig":
        if self.source == self.dest:
            raise ValueError("source and dest accounts must differ")
        return self


class RacelabConfig(BaseModel):
    """Root configuration for racelab."""

    paths: PathsConfig = Field(default_factory=PathsConfig)
    lock: LockConfig = Field(default_factory=LockConfig)
    harness: HarnessConfig = Field(default_factory=HarnessConfig)
    counter: CounterConfig = Field(default_factory=CounterConfig)
    bank: BankConfig = Field(default_factory=BankConfig)
    inventory: InventoryConfig = Field(default_factory=InventoryConfig)
    buffer: BufferConfig = Field(default_factory=BufferConfig)
    transfer: TransferConfig = Field(default_factory=TransferConfig)


def load_config(path: Path | None = None) -> RacelabConfig:
    """Load config from a TOML file.

    Args:
        path: Explicit config path. When None, ./racelab.toml is used if present.

    Returns:
        Loaded configuration, or defaults if no config file exists

    Raises:
        ConfigError: If an explicit path is missing or any file is invalid
    """
    if path is None:
        path = Path.cwd() / CONFIG_FILENAME
        if not path.exists():
            return RacelabConfig()
    elif not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e

    try:
        return RacelabConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config in {path}: {e}") from e


def write_config_template(directory: Path) -> Path:
    """Write default racelab.toml template.

    Args:
        directory: Directory to write the template into

    Returns:
        Path to the written config file
    """
    config_path = directory / CONFIG_FILENAME
    template = {
        "paths": {"work_dir": tempfile.gettempdir()},
        "lock": {"max_retries": DEFAULT_MAX_RETRIES, "retry_delay_ms": DEFAULT_RETRY_DELAY_MS},
        # worker_timeout (seconds) is unset by default: a hung worker blocks the run
        "harness": {},
        "counter": {
            "workers": 5,
            "increments": 20,
            "delta": 1,
            "initial": 0,
            "window": {"min_ms": 0, "max_ms": 10},
            "pause": {"min_ms": 0, "max_ms": 5},
        },
        "bank": {
            "workers": 4,
            "amount": 300,
            "initial": 1000,
            "window": {"min_ms": 0, "max_ms": 100},
            "pause": {"min_ms": 0, "max_ms": 50},
        },
        "inventory": {
            "customers": 15,
            "quantity": 1,
            "initial": 10,
            "product": "Laptop",
            "stagger_ms": 10,
            "window": {"min_ms": 0, "max_ms": 150},
            "pause": {"min_ms": 0, "max_ms": 100},
        },
        "buffer": {
            "capacity": DEFAULT_BUFFER_CAPACITY,
            "producers": 2,
            "consumers": 2,
            "items": 5,
            "initial": 0,
            "max_attempts": DEFAULT_BUFFER_ATTEMPTS,
            "window": {"min_ms": 0, "max_ms": 20},
            "pause": {"min_ms": 0, "max_ms": 20},
        },
        "transfer": {
            "workers": 5,
            "amount": 100,
            "initial": 1000,
            "source": "Alice",
            "dest": "Bob",
            "window": {"min_ms": 0, "max_ms": 100},
        },
    }
    with open(config_path, "wb") as f:
        tomli_w.dump(template, f)
    return config_path
