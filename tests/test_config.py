import pytest

from stratforge.common.config.config_loader import build_config, load_config
from stratforge.common.config.schema import MainConfig, OptimizerConfig, PortfolioConfig
from stratforge.common.errors import ConfigurationError


def test_defaults():
    cfg = MainConfig()
    assert cfg.portfolio.initial_balance == 10000.0
    assert cfg.portfolio.max_positions == 10
    assert cfg.portfolio.commission == 0.001
    assert cfg.execution.enabled is True
    assert cfg.execution.latency_ms == 100
    assert cfg.backtest.mode == "standard"
    assert cfg.walk_forward.periods == 12
    assert cfg.monte_carlo.runs == 1000
    assert cfg.optimizer.method == "genetic"
    assert cfg.optimizer.population_size == 50
    assert cfg.optimizer.fitness_function == "sharpe"


def test_load_config_with_env_expansion(tmp_path, monkeypatch):
    monkeypatch.setenv("SF_BALANCE", "25000")
    cfg_file = tmp_path / "config.yml"
    cfg_file.write_text(
        "\n".join(
            [
                "portfolio:",
                "  initial_balance: ${SF_BALANCE}",
                "  max_positions: 3",
                "optimizer:",
                "  method: grid",
                "  max_combinations: 500",
            ]
        ),
        encoding="utf-8",
    )
    cfg = load_config(str(cfg_file))
    assert cfg.portfolio.initial_balance == 25000.0
    assert cfg.portfolio.max_positions == 3
    assert cfg.optimizer.method == "grid"
    assert cfg.optimizer.max_combinations == 500


def test_dotenv_next_to_config_is_loaded(tmp_path, monkeypatch):
    monkeypatch.delenv("SF_SYMBOL", raising=False)
    (tmp_path / ".env").write_text("SF_SYMBOL='ETHUSDT'\n# comment\n", encoding="utf-8")
    cfg_file = tmp_path / "config.yml"
    cfg_file.write_text("backtest:\n  default_symbol: ${SF_SYMBOL}\n", encoding="utf-8")
    try:
        assert load_config(str(cfg_file)).backtest.default_symbol == "ETHUSDT"
    finally:
        monkeypatch.delenv("SF_SYMBOL", raising=False)


def test_missing_env_var(tmp_path, monkeypatch):
    monkeypatch.delenv("SF_UNSET_VAR", raising=False)
    cfg_file = tmp_path / "config.yml"
    cfg_file.write_text("backtest:\n  default_symbol: ${SF_UNSET_VAR}\n", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="Missing environment variable"):
        load_config(str(cfg_file), load_env=False)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yml"))


def test_non_mapping_root(tmp_path):
    cfg_file = tmp_path / "config.yml"
    cfg_file.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_config(str(cfg_file))


@pytest.mark.parametrize(
    "raw",
    [
        {"portfolio": {"initial_balance": 0}},
        {"portfolio": {"max_risk_per_trade": 1.5}},
        {"portfolio": {"unknown_key": 1}},
        {"optimizer": {"method": "annealing"}},
        {"optimizer": {"mutation_rate": -0.1}},
        {"backtest": {"mode": "live"}},
        {"walk_forward": {"optimization_ratio": 1.0}},
        {"extra_section": {}},
    ],
)
def test_invalid_values_rejected(raw):
    with pytest.raises(ConfigurationError, match="Invalid configuration"):
        build_config(raw)


def test_config_errors_are_value_errors():
    with pytest.raises(ValueError):
        build_config({"monte_carlo": {"runs": 0}})


def test_sections_validate_on_their_own():
    assert PortfolioConfig(max_positions=2).max_positions == 2
    assert OptimizerConfig(seed=7).seed == 7
