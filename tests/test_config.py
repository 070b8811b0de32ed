"""
Container configuration: defaults, dict and environment loading.
"""

import pytest

from pinion import ConfigError, Container, ContainerConfig, DisposalStrategy, ServiceScope


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("PINION_DEFAULT_SCOPE", "PINION_AUTO_BIND", "PINION_ALLOW_LAZY_CYCLES", "PINION_TRACE", "PINION_DISPOSAL_STRATEGY"):
        monkeypatch.delenv(name, raising=False)


# ============================================================================
# Defaults and dict loading
# ============================================================================


class TestContainerConfig:

    def test_defaults(self):
        config = ContainerConfig()
        assert config.default_scope is ServiceScope.TRANSIENT
        assert config.auto_bind is False
        assert config.allow_lazy_cycles is True
        assert config.trace is False
        assert config.disposal_strategy is DisposalStrategy.LIFO

    def test_scope_string_parsed(self):
        assert ContainerConfig(default_scope="request").default_scope is ServiceScope.REQUEST

    def test_invalid_scope(self):
        with pytest.raises(ConfigError):
            ContainerConfig(default_scope="pooled")

    def test_from_dict(self):
        config = ContainerConfig.from_dict({"auto_bind": "yes", "trace": "0"})
        assert config.auto_bind is True
        assert config.trace is False

    def test_disposal_strategy_parsed(self):
        assert ContainerConfig(disposal_strategy="FIFO").disposal_strategy is DisposalStrategy.FIFO
        config = ContainerConfig.from_dict({"disposal_strategy": "parallel"})
        assert config.disposal_strategy is DisposalStrategy.PARALLEL

    def test_invalid_disposal_strategy(self):
        with pytest.raises(ConfigError):
            ContainerConfig(disposal_strategy="random")

    def test_from_dict_unknown_option(self):
        with pytest.raises(ConfigError):
            ContainerConfig.from_dict({"pool_size": 4})

    def test_from_dict_bad_boolean(self):
        with pytest.raises(ConfigError):
            ContainerConfig.from_dict({"auto_bind": "maybe"})

    def test_with_options(self):
        config = ContainerConfig().with_options(auto_bind=True)
        assert config.auto_bind is True
        assert config.default_scope is ServiceScope.TRANSIENT

    def test_frozen(self):
        with pytest.raises(Exception):
            ContainerConfig().trace = True


# ============================================================================
# Environment loading
# ============================================================================


class TestFromEnv:

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("PINION_DEFAULT_SCOPE", "singleton")
        monkeypatch.setenv("PINION_AUTO_BIND", "true")
        monkeypatch.setenv("PINION_DISPOSAL_STRATEGY", "fifo")

        config = ContainerConfig.from_env()

        assert config.default_scope is ServiceScope.SINGLETON
        assert config.auto_bind is True
        assert config.disposal_strategy is DisposalStrategy.FIFO

    def test_unrelated_prefixed_variables_ignored(self, monkeypatch):
        monkeypatch.setenv("PINION_HOME", "/opt/pinion")
        assert ContainerConfig.from_env() == ContainerConfig()

    def test_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("PINION_DEFAULT_SCOPE=request\nPINION_TRACE=on\nOTHER=1\n")

        config = ContainerConfig.from_env(env_file=str(env_file))

        assert config.default_scope is ServiceScope.REQUEST
        assert config.trace is True

    def test_environment_overrides_env_file(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("PINION_DEFAULT_SCOPE=request\n")
        monkeypatch.setenv("PINION_DEFAULT_SCOPE", "singleton")

        config = ContainerConfig.from_env(env_file=str(env_file))

        assert config.default_scope is ServiceScope.SINGLETON

    def test_overrides_win(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PINION_AUTO_BIND", "true")

        config = ContainerConfig.from_env(overrides={"auto_bind": False})

        assert config.auto_bind is False

    def test_custom_prefix(self, monkeypatch):
        monkeypatch.setenv("APP_DI_TRACE", "1")
        assert ContainerConfig.from_env(prefix="APP_DI_").trace is True

    def test_missing_env_file(self, tmp_path):
        with pytest.raises(ConfigError):
            ContainerConfig.from_env(env_file=str(tmp_path / "missing.env"))


class TestConfigInContainer:

    def test_trace_attaches_logging_listener(self, caplog):
        container = Container(config=ContainerConfig(trace=True))
        container.bind_constant("answer", 42)

        with caplog.at_level("DEBUG", logger="pinion.diagnostics"):
            container.get("answer")

        assert container.diagnostics.enabled
        assert any("Resolved answer" in r.getMessage() for r in caplog.records)
