"""Settings validation and environment loading."""

import pytest

from identity_wallet.settings import DEFAULT_ITERATIONS, RecoverySettings


def test_defaults():
    s = RecoverySettings()
    assert s.MIN_PASSPHRASE_LENGTH == 8
    assert s.SEED_ITERATIONS == DEFAULT_ITERATIONS == 100_000
    assert s.BACKUP_ITERATIONS == 100_000
    assert s.SALT_LENGTH == 16
    assert s.normalized_log_level == "INFO"


@pytest.mark.parametrize(
    "overrides, match",
    [
        ({"MIN_PASSPHRASE_LENGTH": 0}, "MIN_PASSPHRASE_LENGTH"),
        ({"SEED_ITERATIONS": 0}, "SEED_ITERATIONS"),
        ({"BACKUP_ITERATIONS": -1}, "BACKUP_ITERATIONS"),
        ({"SALT_LENGTH": 8}, "SALT_LENGTH"),
        ({"SALT_LENGTH": 256}, "SALT_LENGTH"),
        ({"LOG_LEVEL": "LOUD"}, "LOG_LEVEL"),
    ],
)
def test_validation(overrides, match):
    with pytest.raises(ValueError, match=match):
        RecoverySettings(**overrides)


def test_frozen():
    s = RecoverySettings()
    with pytest.raises(Exception):
        s.SEED_ITERATIONS = 1  # type: ignore[misc]


def test_load_from_env(monkeypatch):
    monkeypatch.setenv("WALLET_MIN_PASSPHRASE_LENGTH", "10")
    monkeypatch.setenv("WALLET_SALT_LENGTH", "24")
    monkeypatch.setenv("WALLET_LOG_LEVEL", "debug")

    s = RecoverySettings.load()
    assert s.MIN_PASSPHRASE_LENGTH == 10
    assert s.SEED_ITERATIONS == DEFAULT_ITERATIONS
    assert s.BACKUP_ITERATIONS == DEFAULT_ITERATIONS
    assert s.SALT_LENGTH == 24
    assert s.normalized_log_level == "DEBUG"


def test_load_defaults_when_unset(monkeypatch):
    for name in [
        "WALLET_MIN_PASSPHRASE_LENGTH",
        "WALLET_SEED_ITERATIONS",
        "WALLET_BACKUP_ITERATIONS",
        "WALLET_SALT_LENGTH",
        "WALLET_LOG_LEVEL",
    ]:
        monkeypatch.delenv(name, raising=False)
    assert RecoverySettings.load() == RecoverySettings()


def test_load_rejects_non_integer(monkeypatch):
    monkeypatch.setenv("WALLET_SEED_ITERATIONS", "lots")
    with pytest.raises(ValueError, match="WALLET_SEED_ITERATIONS"):
        RecoverySettings.load()


@pytest.mark.parametrize("name", ["WALLET_SEED_ITERATIONS", "WALLET_BACKUP_ITERATIONS"])
@pytest.mark.parametrize("value", ["1", "99999", "200000"])
def test_load_rejects_iteration_overrides(monkeypatch, name, value):
    """Iteration counts decide wallet identity and backup keys; the environment cannot move them."""
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError, match=name):
        RecoverySettings.load()


def test_load_accepts_v1_iteration_count(monkeypatch):
    monkeypatch.setenv("WALLET_SEED_ITERATIONS", "100000")
    monkeypatch.setenv("WALLET_BACKUP_ITERATIONS", "100000")
    s = RecoverySettings.load()
    assert s.SEED_ITERATIONS == s.BACKUP_ITERATIONS == DEFAULT_ITERATIONS


def test_constructor_override_for_cheap_cost():
    s = RecoverySettings(SEED_ITERATIONS=1, BACKUP_ITERATIONS=1)
    assert s.SEED_ITERATIONS == s.BACKUP_ITERATIONS == 1
