"""Tests for the fleetlock CLI."""

from __future__ import annotations

import signal
import sys
from collections.abc import Callable
from dataclasses import replace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from typer.testing import CliRunner

import fleetlock.cli as cli_module
from fleetlock.cli import app
from fleetlock.store.client import LockStoreClient, StoreConfig

runner = CliRunner()


def _client_factory(handle: Any) -> Callable[[StoreConfig], LockStoreClient]:
    def build(config: StoreConfig) -> LockStoreClient:
        return LockStoreClient(
            replace(config, connect_retries=0),
            redis_factory=lambda cfg: handle,
        )

    return build


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the CLI from reconfiguring the test process's root logger."""
    monkeypatch.setattr(cli_module, "configure_logging", MagicMock())


@pytest.fixture
def use_redis(monkeypatch: pytest.MonkeyPatch) -> Callable[[Any], None]:
    def install(handle: Any) -> None:
        monkeypatch.setattr(cli_module, "LockStoreClient", _client_factory(handle))

    return install


class TestCheck:
    """Tests for fleetlock check."""

    def test_ready(self, use_redis: Callable[[Any], None], redis_double: Any) -> None:
        use_redis(redis_double)

        result = runner.invoke(app, ["check"])

        assert result.exit_code == 0
        assert "ready" in result.output
        assert "Locks are enforced" in result.output

    def test_not_ready(
        self, use_redis: Callable[[Any], None], unreachable_redis: AsyncMock
    ) -> None:
        use_redis(unreachable_redis)

        result = runner.invoke(app, ["check"])

        assert result.exit_code == 1
        assert "fail open" in result.output


class TestHolder:
    """Tests for fleetlock holder."""

    def test_unlocked(self, use_redis: Callable[[Any], None], redis_double: Any) -> None:
        use_redis(redis_double)

        result = runner.invoke(app, ["holder", "cron:sync"])

        assert result.exit_code == 0
        assert "cron:sync: unlocked" in result.output

    def test_held(self, use_redis: Callable[[Any], None], redis_double: Any) -> None:
        redis_double.data["lock:cron:sync"] = ("web-2-77-1767000000000", None)
        use_redis(redis_double)

        result = runner.invoke(app, ["holder", "cron:sync"])

        assert result.exit_code == 0
        assert "held by web-2-77-1767000000000" in result.output

    def test_store_down(
        self, use_redis: Callable[[Any], None], unreachable_redis: AsyncMock
    ) -> None:
        use_redis(unreachable_redis)

        result = runner.invoke(app, ["holder", "cron:sync"])

        assert result.exit_code == 1

    def test_empty_name_exits_2(self) -> None:
        """An empty lock name is a usage error, not a traceback."""
        result = runner.invoke(app, ["holder", ""])

        assert result.exit_code == 2
        assert "Invalid lock name" in result.output


class TestExec:
    """Tests for fleetlock exec."""

    def test_runs_command_and_propagates_exit_code(
        self, use_redis: Callable[[Any], None], redis_double: Any
    ) -> None:
        use_redis(redis_double)

        result = runner.invoke(
            app,
            ["exec", "job", "--ttl-ms", "5000", "--", sys.executable, "-c", "import sys; sys.exit(3)"],
        )

        assert result.exit_code == 3
        assert redis_double.data == {}

    def test_success(self, use_redis: Callable[[Any], None], redis_double: Any) -> None:
        use_redis(redis_double)

        result = runner.invoke(
            app, ["exec", "job", "--ttl-ms", "5000", "--", sys.executable, "-c", "pass"]
        )

        assert result.exit_code == 0

    def test_skipped_when_held(self, use_redis: Callable[[Any], None], redis_double: Any) -> None:
        redis_double.data["lock:job"] = ("other-node", None)
        use_redis(redis_double)

        result = runner.invoke(
            app,
            ["exec", "job", "--ttl-ms", "5000", "--", sys.executable, "-c", "import sys; sys.exit(9)"],
        )

        assert result.exit_code == 0
        assert "Skipped" in result.output
        assert redis_double.data["lock:job"][0] == "other-node"

    def test_fail_open_runs_command(
        self, use_redis: Callable[[Any], None], unreachable_redis: AsyncMock
    ) -> None:
        use_redis(unreachable_redis)

        result = runner.invoke(
            app, ["exec", "job", "--ttl-ms", "5000", "--", sys.executable, "-c", "import sys; sys.exit(4)"]
        )

        assert result.exit_code == 4

    def test_ttl_required(self) -> None:
        result = runner.invoke(app, ["exec", "job", "--", "true"])

        assert result.exit_code != 0

    def test_missing_command_exits_127(
        self, use_redis: Callable[[Any], None], redis_double: Any
    ) -> None:
        """A command that cannot be started is reported, and the lock is released."""
        use_redis(redis_double)

        result = runner.invoke(
            app, ["exec", "job", "--ttl-ms", "5000", "--", "/nonexistent/fleetlock-job"]
        )

        assert result.exit_code == 127
        assert "Cannot run" in result.output
        assert redis_double.data == {}

    def test_signal_exit_code(self, use_redis: Callable[[Any], None], redis_double: Any) -> None:
        """A command killed by a signal exits 128 + signal number."""
        use_redis(redis_double)
        script = "import os, signal; os.kill(os.getpid(), signal.SIGTERM)"

        result = runner.invoke(
            app, ["exec", "job", "--ttl-ms", "5000", "--", sys.executable, "-c", script]
        )

        assert result.exit_code == 128 + signal.SIGTERM

    def test_invalid_name(self) -> None:
        result = runner.invoke(app, ["exec", " ", "--ttl-ms", "5000", "--", "true"])

        assert result.exit_code == 2
        assert "Invalid lock name" in result.output
