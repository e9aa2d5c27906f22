"""
Tests for the entry point and configuration loading.

These tests verify:
- Weight overrides parse from NAME=VALUE pairs
- CLI arguments and their defaults, with bad weight overrides rejected as usage errors
- Environment overrides for the config
"""

import argparse

import pytest

from dex_signal.config import DEFAULT_SUBGRAPH_ID, SignalConfig, build_subgraph_url
from dex_signal.main import parse_args, parse_weights


class TestParseWeights:
    def test_pairs(self):
        assert parse_weights(["tvl=0.5", " heat = 0.1"]) == {"tvl": 0.5, "heat": 0.1}

    def test_none(self):
        assert parse_weights(None) == {}

    def test_missing_separator(self):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_weights(["tvl"])


class TestParseArgs:
    def test_defaults(self):
        args = parse_args([])

        assert args.mode == "watch"
        assert args.risk is None
        assert args.limit == 10

    def test_rank(self):
        args = parse_args(["--mode", "rank", "--risk", "LOW", "--weight", "tvl=1", "--weight", "heat=2"])

        assert args.mode == "rank"
        assert args.risk == "LOW"
        assert args.weight == ["tvl=1", "heat=2"]
        assert args.weights == {"tvl": 1.0, "heat": 2.0}

    def test_rejects_unknown_risk(self):
        with pytest.raises(SystemExit):
            parse_args(["--risk", "EXTREME"])

    @pytest.mark.parametrize("weight", ["tvl=abc", "tvl", "vibes=1", "tvl=-1"])
    def test_rejects_bad_weight(self, weight, capsys):
        with pytest.raises(SystemExit) as exc:
            parse_args(["--mode", "rank", "--weight", weight])

        assert exc.value.code == 2
        assert "invalid --weight" in capsys.readouterr().err

    def test_no_weights(self):
        assert parse_args([]).weights == {}


class TestConfig:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("THE_GRAPH_API_KEY", "secret")
        monkeypatch.setenv("RAW_RETENTION_SECONDS", "7200")
        monkeypatch.setenv("GOOD_TRADERS_PATH", "/tmp/traders.json")
        monkeypatch.delenv("SUBGRAPH_URL", raising=False)

        config = SignalConfig.from_env()

        assert config.subgraph_url == build_subgraph_url("secret", DEFAULT_SUBGRAPH_ID)
        assert config.raw_retention_seconds == 7200.0
        assert config.good_traders_path == "/tmp/traders.json"

    def test_explicit_url_wins(self, monkeypatch):
        monkeypatch.setenv("SUBGRAPH_URL", "https://index.test/graphql")

        assert SignalConfig.from_env().subgraph_url == "https://index.test/graphql"
