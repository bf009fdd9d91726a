"""
Unit tests for the ledger's ambient plumbing: error hierarchy, environment
configuration, structured logging and Prometheus instrumentation.
"""

import importlib
import json
import logging

import pytest
from prometheus_client import REGISTRY

from staking_world import ADMIN, OWNER
from troopz.core import config, staking_exceptions
from troopz.core.contracts.erc721 import ERC721Factory
from troopz.core.logging_config import StakingJsonFormatter, get_logger, setup_logging
from troopz.core.staking_exceptions import (
    ConfigurationError,
    InsufficientReserveError,
    MustRetainAnchorError,
    NotStakedError,
    StakingError,
)


def _sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestExceptions:
    def test_message_defaults_to_code(self):
        error = MustRetainAnchorError()
        assert str(error) == "MUST_HAVE_OG_STAKED"
        assert error.details == {}
        assert error.recoverable is False

    def test_details_and_recoverable_override(self):
        error = StakingError("boom", details={"k": 1}, recoverable=True)
        assert error.message == "boom"
        assert error.details == {"k": 1}
        assert error.recoverable is True

    def test_only_reserve_shortfall_is_recoverable(self):
        assert InsufficientReserveError().recoverable is True
        recoverable = [
            cls
            for cls in vars(staking_exceptions).values()
            if isinstance(cls, type) and issubclass(cls, StakingError) and cls.recoverable
        ]
        assert recoverable == [InsufficientReserveError]

    def test_codes_are_unique(self):
        codes = [
            cls.code
            for cls in vars(staking_exceptions).values()
            if isinstance(cls, type) and issubclass(cls, StakingError)
        ]
        assert len(codes) == len(set(codes))
        assert NotStakedError.code == "NOT_STAKED"


class TestConfig:
    def test_defaults(self):
        assert config.NETWORK in {"testnet", "mainnet"}
        assert config.MAX_BATCH_SIZE >= 0
        assert config.Config.LOG_LEVEL == config.LOG_LEVEL

    @pytest.mark.parametrize(
        "env_var,value",
        [
            ("TROOPZ_MAX_BATCH_SIZE", "many"),
            ("TROOPZ_MAX_BATCH_SIZE", "-1"),
            ("TROOPZ_NETWORK", "moonnet"),
            ("TROOPZ_LOG_LEVEL", "LOUD"),
        ],
    )
    def test_invalid_environment_fails_fast(self, monkeypatch, env_var, value):
        monkeypatch.setenv(env_var, value)
        try:
            with pytest.raises(ConfigurationError, match=env_var):
                importlib.reload(config)
        finally:
            monkeypatch.delenv(env_var)
            importlib.reload(config)
        # The error class survives a reload of the settings module
        assert config.ConfigurationError is ConfigurationError

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TROOPZ_MAX_BATCH_SIZE", "25")
        monkeypatch.setenv("TROOPZ_NETWORK", "MAINNET")
        monkeypatch.setenv("TROOPZ_STATE_DIR", str(tmp_path))
        try:
            importlib.reload(config)
            assert config.MAX_BATCH_SIZE == 25
            assert config.NETWORK == "mainnet"
            assert config.STATE_DIR == str(tmp_path)
        finally:
            for name in ("TROOPZ_MAX_BATCH_SIZE", "TROOPZ_NETWORK", "TROOPZ_STATE_DIR"):
                monkeypatch.delenv(name)
            importlib.reload(config)


class TestLogging:
    def test_records_are_json_with_ledger_context(self, tmp_path):
        log_file = tmp_path / "logs" / "staking.log"
        logger = setup_logging(
            name="troopz.test_json",
            log_file=str(log_file),
            level="DEBUG",
            environment="testnet",
            enable_console=False,
        )
        logger.info("Token staked", extra={"event": "staking.deposit", "token_id": 7})
        for handler in logger.handlers:
            handler.flush()

        record = json.loads(log_file.read_text().splitlines()[-1])
        assert record["message"] == "Token staked"
        assert record["event"] == "staking.deposit"
        assert record["token_id"] == 7
        assert record["service"] == "troopz"
        assert record["environment"] == "testnet"
        assert record["level"] == "info"
        assert record["source"]["function"] == "test_records_are_json_with_ledger_context"

    def test_setup_replaces_handlers(self):
        logger = setup_logging(name="troopz.test_handlers", enable_console=True)
        logger = setup_logging(name="troopz.test_handlers", enable_console=True)
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, StakingJsonFormatter)

    def test_get_logger_configures_package_root(self):
        root = logging.getLogger("troopz")
        saved = root.handlers
        root.handlers = []
        try:
            logger = get_logger("troopz.core.staking")
            assert logger.name == "troopz.core.staking"
            assert root.handlers
        finally:
            root.handlers = saved

    def test_collection_deployment_logs_at_info(self, tmp_path):
        log_file = tmp_path / "deploy.log"
        root = logging.getLogger("troopz")
        saved_handlers, saved_level = root.handlers, root.level
        try:
            setup_logging(name="troopz", log_file=str(log_file), level="INFO", enable_console=False)
            collection = ERC721Factory().create_collection(ADMIN, "Troopz OG", "OG")
            for handler in root.handlers:
                handler.flush()
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers = saved_handlers
            root.setLevel(saved_level)

        records = [json.loads(line) for line in log_file.read_text().splitlines()]
        created = [r for r in records if r.get("event") == "erc721.created"]
        assert len(created) == 1
        assert created[0]["collection_name"] == "Troopz OG"
        assert created[0]["address"] == collection.address


class TestMetrics:
    def test_deposit_withdraw_and_claim_are_counted(self, configured):
        staking, og = configured.staking, configured.og
        label = og.address
        deposits = _sample("troopz_staking_deposits_total", collection=label)
        withdrawals = _sample("troopz_staking_withdrawals_total", collection=label)
        claims = _sample("troopz_staking_claims_total")
        paid = _sample("troopz_staking_rewards_paid_total")

        staking.deposit(OWNER, OWNER, og.address, 1)
        configured.clock.advance(86400)
        staking.update_rewards_and_claim(OWNER)
        staking.withdraw(OWNER, OWNER, OWNER, og.address, 1)

        assert _sample("troopz_staking_deposits_total", collection=label) == deposits + 1
        assert _sample("troopz_staking_withdrawals_total", collection=label) == withdrawals + 1
        assert _sample("troopz_staking_claims_total") == claims + 1
        assert _sample("troopz_staking_rewards_paid_total") == paid + 10
        assert _sample("troopz_staking_reserve_balance", address=staking.address) == 1_000_000 - 10

    def test_rejections_are_counted_by_code(self, configured):
        before = _sample("troopz_staking_rejected_total", code="NEED_OG_STAKED")
        deposits = _sample("troopz_staking_deposits_total", collection=configured.second.address)
        with pytest.raises(StakingError):
            configured.staking.deposit(OWNER, OWNER, configured.second.address, 1)
        assert _sample("troopz_staking_rejected_total", code="NEED_OG_STAKED") == before + 1
        assert _sample("troopz_staking_deposits_total", collection=configured.second.address) == deposits
