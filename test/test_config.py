import os

import pytest

from dialogcast.config.settings import PipelineConfig, get_openai_key, load_env_file, resolve_relative_path


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("DIALOGCAST_SYNTHESIS_MAX_WORKERS", "DIALOGCAST_TIMING_SEED", "DIALOGCAST_ANALYSIS_ENABLED",
                 "DIALOGCAST_OPENAI_TEMPERATURE", "OPENAI_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = PipelineConfig()
    assert config.sample_rate == 44100
    assert config.bytes_per_frame == 4
    assert config.max_breaks == 5
    assert config.synthesis_failure_policy == "abort"
    assert config.timing_seed is None


def test_from_env_coerces_types(monkeypatch):
    monkeypatch.setenv("DIALOGCAST_SYNTHESIS_MAX_WORKERS", "4")
    monkeypatch.setenv("DIALOGCAST_TIMING_SEED", "7")
    monkeypatch.setenv("DIALOGCAST_ANALYSIS_ENABLED", "false")
    monkeypatch.setenv("DIALOGCAST_OPENAI_TEMPERATURE", "0.5")
    config = PipelineConfig.from_env()
    assert config.synthesis_max_workers == 4
    assert config.timing_seed == 7
    assert config.analysis_enabled is False
    assert config.openai_temperature == 0.5


def test_overrides_win_over_env(monkeypatch):
    monkeypatch.setenv("DIALOGCAST_SYNTHESIS_MAX_WORKERS", "4")
    assert PipelineConfig.from_env(synthesis_max_workers=1).synthesis_max_workers == 1


@pytest.mark.parametrize(
    "kwargs",
    [
        {"channels": 3},
        {"sample_width": 3},
        {"synthesis_max_workers": 0},
        {"synthesis_failure_policy": "retry"},
    ],
)
def test_invalid_values(kwargs):
    with pytest.raises(ValueError):
        PipelineConfig(**kwargs)


def test_retry_policy_from_config():
    policy = PipelineConfig(retry_max_attempts=5, retry_base_delay=0.5, retry_jitter=0.0).retry_policy()
    assert (policy.max_attempts, policy.base_delay, policy.jitter) == (5, 0.5, 0.0)


def test_openai_key_fallback(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "official")
    assert get_openai_key() == "official"
    monkeypatch.setenv("OPENAI_KEY", "project")
    assert get_openai_key() == "project"


def test_env_file_does_not_override(monkeypatch, tmp_path):
    env = tmp_path / ".env"
    env.write_text("DIALOGCAST_TEST_A=from-file\nDIALOGCAST_TEST_B=from-file\n", encoding="utf-8")
    monkeypatch.setenv("DIALOGCAST_TEST_A", "from-env")
    monkeypatch.delenv("DIALOGCAST_TEST_B", raising=False)
    load_env_file(env)
    assert os.environ["DIALOGCAST_TEST_A"] == "from-env"
    assert os.environ["DIALOGCAST_TEST_B"] == "from-file"
    monkeypatch.delenv("DIALOGCAST_TEST_B")
    assert resolve_relative_path("speakers.json") == (tmp_path / "speakers.json").resolve()
