"""
Tests for settings loading from TOML and the environment.
"""

import logging
import os
from unittest.mock import patch

import pytest

from tirds.config import TirdsSettings, load_config
from tirds.errors import MalformedConfiguration
from tirds.schemas import SpecialistDomain


def _write(tmp_path, text):
    path = tmp_path / "tirds.toml"
    path.write_text(text)
    return str(path)


class TestDefaults:

    def test_default_values(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = load_config(None)
        assert settings.cache.sqlite_path == "data/tirds_cache.db"
        assert settings.cache.memory_max_capacity == 10_000
        assert settings.cache.memory_ttl_seconds == 60
        assert settings.agents.specialist_timeout_seconds == 45
        assert settings.agents.synthesizer_timeout_seconds == 120
        weights = {s.domain: s.weight for s in settings.agents.specialists}
        assert weights == {
            SpecialistDomain.TECHNICAL: 0.35,
            SpecialistDomain.MACRO: 0.20,
            SpecialistDomain.SENTIMENT: 0.20,
            SpecialistDomain.SECTOR: 0.25,
        }

    def test_shipped_config_loads(self):
        path = os.path.join(os.path.dirname(__file__), "..", "..", "config", "tirds.toml")
        with patch.dict(os.environ, {}, clear=True):
            settings = load_config(path)
        assert len(settings.agents.specialists) == 4


class TestTomlLoading:

    def test_file_values(self, tmp_path):
        path = _write(tmp_path, """
log_level = "debug"

[cache]
sqlite_path = "/tmp/other.db"
memory_ttl_seconds = 5

[agents]
specialist_timeout_seconds = 10

[[agents.specialists]]
domain = "technical"
weight = 0.6
timeout_seconds = 20

[[agents.specialists]]
domain = "macro"
weight = 0.4
model = "claude-3-5-sonnet-latest"
""")
        with patch.dict(os.environ, {}, clear=True):
            settings = load_config(path)

        assert settings.log_level == "DEBUG"
        assert settings.cache.sqlite_path == "/tmp/other.db"
        assert settings.cache.memory_max_capacity == 10_000
        technical = settings.agents.specialist(SpecialistDomain.TECHNICAL)
        macro = settings.agents.specialist(SpecialistDomain.MACRO)
        assert settings.agents.timeout_for(technical) == 20
        assert settings.agents.timeout_for(macro) == 10
        assert settings.agents.model_for(macro) == "claude-3-5-sonnet-latest"
        assert settings.agents.model_for(technical) == settings.agents.specialist_model

    def test_environment_beats_file(self, tmp_path):
        path = _write(tmp_path, "[cache]\nsqlite_path = \"/from/file.db\"\n")
        env = {"TIRDS_CACHE__SQLITE_PATH": "/from/env.db", "TIRDS_AGENTS__SYNTHESIZER_MODEL": "m2"}
        with patch.dict(os.environ, env, clear=True):
            settings = load_config(path)
        assert settings.cache.sqlite_path == "/from/env.db"
        assert settings.agents.synthesizer_model == "m2"

    def test_settings_are_immutable(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = TirdsSettings()
        with pytest.raises(Exception):
            settings.log_level = "DEBUG"

    def test_weight_sum_warning(self, tmp_path, caplog):
        path = _write(tmp_path, """
[[agents.specialists]]
domain = "technical"
weight = 2.0
""")
        with patch.dict(os.environ, {}, clear=True), caplog.at_level(logging.WARNING, logger="tirds.config"):
            load_config(path)
        assert "renormalized" in caplog.text


class TestMalformedConfiguration:

    def test_missing_required_file(self, tmp_path):
        with pytest.raises(MalformedConfiguration):
            load_config(str(tmp_path / "nope.toml"))

    def test_missing_optional_file_uses_defaults(self, tmp_path):
        with patch.dict(os.environ, {}, clear=True):
            settings = load_config(str(tmp_path / "nope.toml"), required=False)
        assert settings.cache.memory_ttl_seconds == 60

    def test_bad_toml(self, tmp_path):
        with pytest.raises(MalformedConfiguration):
            load_config(_write(tmp_path, "[cache\nsqlite_path ="))

    def test_negative_weight(self, tmp_path):
        path = _write(tmp_path, "[[agents.specialists]]\ndomain = \"macro\"\nweight = -0.1\n")
        with patch.dict(os.environ, {}, clear=True), pytest.raises(MalformedConfiguration):
            load_config(path)

    def test_unknown_domain(self, tmp_path):
        path = _write(tmp_path, "[[agents.specialists]]\ndomain = \"astrology\"\nweight = 0.1\n")
        with patch.dict(os.environ, {}, clear=True), pytest.raises(MalformedConfiguration):
            load_config(path)

    def test_duplicate_domain(self, tmp_path):
        path = _write(tmp_path, """
[[agents.specialists]]
domain = "macro"
weight = 0.5

[[agents.specialists]]
domain = "macro"
weight = 0.5
""")
        with patch.dict(os.environ, {}, clear=True), pytest.raises(MalformedConfiguration):
            load_config(path)

    def test_bad_env_value(self):
        with patch.dict(os.environ, {"TIRDS_CACHE__MEMORY_TTL_SECONDS": "soon"}, clear=True):
            with pytest.raises(MalformedConfiguration):
                load_config(None)
