from pathlib import Path

import pytest

from fuzzpatch.settings import LogLevel, PatchPolicy, Settings, load_settings


def test_defaults():
    settings = Settings()
    assert settings.logging is None
    assert settings.policy == PatchPolicy()
    assert settings.policy.deny_sensitive is True


def test_load_yaml_with_variables_and_env(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("FP_ALLOWED", "src")
    cfg = tmp_path / "fuzzpatch.yaml"
    cfg.write_text(
        "\n".join(
            [
                "variables:",
                "  VENDOR: third_party",
                "logging:",
                "  default_level: debug",
                "  enabled_loggers:",
                "    py.warnings: error",
                "policy:",
                "  denied_paths:",
                "    - ${VENDOR}/",
                "    - build-${VENDOR}",
                "  allowed_paths: ${env:FP_ALLOWED}",
            ]
        ),
        encoding="utf-8",
    )

    settings = load_settings(cfg)

    assert settings.logging is not None
    assert settings.logging.default_level == LogLevel.debug
    assert settings.logging.enabled_loggers == {"py.warnings": LogLevel.error}
    assert settings.policy.denied_paths == ["third_party/", "build-third_party"]
    assert settings.policy.allowed_paths == ["src"]


def test_load_json5(tmp_path: Path):
    cfg = tmp_path / "fuzzpatch.json5"
    cfg.write_text(
        "{\n  // comments are allowed\n  policy: {deny_sensitive: false,},\n}\n",
        encoding="utf-8",
    )
    settings = load_settings(cfg)
    assert settings.policy.deny_sensitive is False


def test_empty_yaml_gives_defaults(tmp_path: Path):
    cfg = tmp_path / "empty.yml"
    cfg.write_text("", encoding="utf-8")
    assert load_settings(cfg) == Settings()


def test_unsupported_extension(tmp_path: Path):
    cfg = tmp_path / "fuzzpatch.toml"
    cfg.write_text("", encoding="utf-8")
    with pytest.raises(ValueError, match="Unsupported config file extension"):
        load_settings(cfg)


def test_root_must_be_mapping(tmp_path: Path):
    cfg = tmp_path / "list.yaml"
    cfg.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError, match="Root configuration must be a mapping"):
        load_settings(cfg)
