"""Tests for configuration presets and loading."""

import pytest
import yaml

from edge_graph.config import PRESETS, config_from_dict, config_to_yaml, get_preset, load_config


class TestPresets:
    def test_default_keeps_dragged_nodes_pinned(self):
        cfg = get_preset("default")
        assert cfg.node_radius == 60
        assert cfg.link_distance == 500
        assert cfg.release_on_drag_end is False

    def test_compact(self):
        cfg = get_preset("compact")
        assert cfg.node_radius == 40
        assert cfg.link_distance == 350
        assert cfg.charge_strength == -600
        assert cfg.release_on_drag_end is True

    def test_spacious(self):
        cfg = get_preset("spacious")
        assert cfg.link_distance == 650
        assert cfg.charge_strength == -1400

    def test_get_preset_returns_copy(self):
        cfg = get_preset("default")
        cfg.node_radius = 1
        cfg.primary_relationships.append("X")
        assert PRESETS["default"].node_radius == 60
        assert PRESETS["default"].primary_relationships == []

    def test_unknown_preset(self):
        with pytest.raises(ValueError, match="Unknown preset 'huge'"):
            get_preset("huge")


class TestLoading:
    def test_config_from_dict(self):
        cfg = config_from_dict({"preset": "compact", "node_radius": 33})
        assert cfg.node_radius == 33
        assert cfg.link_distance == 350

    def test_config_from_empty_dict(self):
        assert config_from_dict({}) == get_preset("default")

    def test_load_config(self, tmp_path):
        path = tmp_path / "graph.yaml"
        path.write_text("preset: spacious\nprimary_relationships: [OWNS]\n")
        cfg = load_config(str(path))
        assert cfg.link_distance == 650
        assert cfg.primary_relationships == ["OWNS"]

    def test_load_config_rejects_non_mapping(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError, match="must contain a mapping"):
            load_config(str(path))

    def test_config_to_yaml(self):
        data = yaml.safe_load(config_to_yaml(get_preset("compact")))
        assert data["node_radius"] == 40
        assert config_from_dict(data) == get_preset("compact")
