"""Tests for configuration loading and validation."""

import argparse

import pytest

from vigil.config import VigilConfig, config_from_dict, load_config, merge_cli_args
from vigil.errors import ConfigurationError


class TestLoadConfig:

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "vigil.yaml"
        path.write_text(
            "instance_id: host-1\n"
            "listen_port: 2000\n"
            "unknown_key: ignored\n"
            "services:\n"
            "  web:\n"
            "    type: http\n"
            "    host: 127.0.0.1\n"
            "    port: 8080\n"
            "    rise: 3\n"
        )
        config = load_config(path)
        assert config.instance_id == "host-1"
        assert config.listen_port == 2000
        assert config.services["web"]["rise"] == 3
        assert config.ephemeral_service_expiry == 60
        assert config.reporter == "log"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == VigilConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="cannot read"):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("services: [unclosed\n")
        with pytest.raises(ConfigurationError, match="cannot parse"):
            load_config(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            load_config(path)


class TestValidate:

    def test_defaults(self):
        config = VigilConfig(instance_id="h", services={}).validate()
        assert config.listen_port == 1025
        assert config.ephemeral_service_expiry == 60
        assert config.tick_interval == 1.0

    @pytest.mark.parametrize("missing", ["instance_id", "services"])
    def test_required(self, missing):
        values = {"instance_id": "h", "services": {}}
        values.pop(missing)
        with pytest.raises(ConfigurationError, match=f"required argument {missing}"):
            config_from_dict(values).validate()

    def test_numeric_coercion(self):
        config = config_from_dict({
            "instance_id": "h", "services": {},
            "listen_port": "2025", "ephemeral_service_expiry": "30",
        }).validate()
        assert config.listen_port == 2025
        assert config.ephemeral_service_expiry == 30

    @pytest.mark.parametrize("values", [
        {"services": ["web"]},
        {"services": {"web": "tcp"}},
        {"listen_port": "not-a-port"},
        {"tick_interval": 0},
    ])
    def test_invalid(self, values):
        config = config_from_dict({"instance_id": "h", "services": {}, **values})
        with pytest.raises(ConfigurationError):
            config.validate()


class TestMergeCliArgs:

    def test_cli_overrides_file(self):
        config = VigilConfig(instance_id="file", listen_port=1025, services={"web": {}})
        args = argparse.Namespace(instance_id="cli", listen_port=None, reporter="registry", services=None)
        merge_cli_args(config, args)
        assert config.instance_id == "cli"
        assert config.listen_port == 1025
        assert config.reporter == "registry"
        assert config.services == {"web": {}}
