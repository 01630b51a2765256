"""Shared test fixtures for racelab tests."""

import os
from collections.abc import Generator
from pathlib import Path

import pytest
from typer.testing import CliRunner

from racelab.config import DelayRange, RacelabConfig
from racelab.core import MemoryResourceStore


@pytest.fixture
def runner() -> CliRunner:
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    """Directory for resource files and lock markers."""
    d = tmp_path / "work"
    d.mkdir()
    return d


@pytest.fixture
def in_tmp_dir(tmp_path: Path) -> Generator[Path, None, None]:
    """Change cwd to tmp_path for the duration of the test."""
    original_cwd = os.getcwd()
    os.chdir(tmp_path)
    try:
        yield tmp_path
    finally:
        os.chdir(original_cwd)


@pytest.fixture
def memory_store() -> MemoryResourceStore:
    """In-process store initialized to zero."""
    store = MemoryResourceStore()
    store.initialize(0)
    return store


@pytest.fixture
def fast_config(work_dir: Path) -> RacelabConfig:
    """Small, quick configuration for end-to-end runs with real processes.

    Lock retries and buffer attempts are generous so locked runs never exhaust
    on a slow machine.
    """
    config = RacelabConfig.model_validate(
        {
            "paths": {"work_dir": str(work_dir)},
            "lock": {"max_retries": 5000, "retry_delay_ms": 1},
            "harness": {"worker_timeout": 120},
            "counter": {"workers": 4, "increments": 10},
            "bank": {"workers": 4, "amount": 300, "initial": 1000},
            "inventory": {"customers": 15, "quantity": 1, "initial": 10, "stagger_ms": 0},
            "buffer": {"capacity": 3, "items": 5, "max_attempts": 2000},
            "transfer": {"workers": 5, "amount": 100, "initial": 1000},
        }
    )
    quick = DelayRange(min_ms=0, max_ms=2)
    for section in (config.counter, config.bank, config.inventory, config.buffer):
        section.window = quick
        section.pause = quick
    config.transfer.window = quick
    return config
