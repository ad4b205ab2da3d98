# CREATE FILE: utils/tests/test_config.py

import json
import pytest
from utils.config import DEFAULT_CONFIG, load_config


class TestLoadConfig:

    def test_missing_file_uses_defaults(self):
        config = load_config("pricing", "/nonexistent/path.json")
        assert config == DEFAULT_CONFIG["pricing"]

    def test_file_overrides_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"pricing": {"platform_fee_rate": 0.05}}))

        config = load_config("pricing", str(path))
        assert config["platform_fee_rate"] == 0.05
        assert config["vat_rate"] == 0.12

    def test_defaults_are_not_shared(self):
        config = load_config("matching", "/nonexistent/path.json")
        config["weights"]["proximity"] = 0.9
        assert DEFAULT_CONFIG["matching"]["weights"]["proximity"] == 0.4

    def test_unknown_section(self):
        with pytest.raises(ValueError):
            load_config("shipping")

    def test_bundled_file_matches_defaults(self):
        """config/defaults.json and the built-in fallback agree"""
        for section in DEFAULT_CONFIG:
            assert load_config(section) == DEFAULT_CONFIG[section]
