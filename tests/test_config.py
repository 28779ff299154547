import logging

import pytest
from pydantic import ValidationError

from partixel.config import DisplaySettings, EffectParams, Settings, parse_hex_color
from partixel.logging_config import configure_logging


def test_effect_defaults():
    params = EffectParams()
    assert params.grid_spacing == 4
    assert params.contrast == 1.5
    assert params.accent_color == "#00d9ff"
    assert params.mouse_radius == 100
    assert params.repulsion_strength == 1.0
    assert params.return_speed == 0.3
    assert params.accent_probability == 0.03
    assert params.size_variation == 0.3


@pytest.mark.parametrize(
    "field, value",
    [
        ("grid_spacing", 1),
        ("grid_spacing", 13),
        ("contrast", 0.4),
        ("contrast", 2.5),
        ("mouse_radius", 20),
        ("repulsion_strength", 0.0),
        ("return_speed", 0.5),
        ("accent_probability", 0.2),
        ("size_variation", -0.1),
    ],
)
def test_out_of_range_values_are_rejected(field, value):
    with pytest.raises(ValidationError):
        EffectParams(**{field: value})


def test_accent_color_is_normalised():
    assert EffectParams(accent_color="00D9FF").accent_color == "#00d9ff"
    assert EffectParams(accent_color=" #AbCdEf ").accent_color == "#abcdef"
    assert EffectParams().accent_bgr() == (255, 217, 0)


@pytest.mark.parametrize("value", ["red", "#12345", "#1234567", "#gg0000"])
def test_bad_colors_are_rejected(value):
    with pytest.raises(ValidationError):
        EffectParams(accent_color=value)
    with pytest.raises(ValueError):
        parse_hex_color(value)


def test_display_color_is_checked():
    with pytest.raises(ValidationError):
        DisplaySettings(default_color="white")


def test_params_are_frozen():
    params = EffectParams()
    with pytest.raises(ValidationError):
        params.contrast = 2.0
    updated = params.model_copy(update={"contrast": 2.0})
    assert updated.contrast == 2.0
    assert params.contrast == 1.5


def test_generation_key_covers_only_generation_params():
    base = EffectParams()
    assert base.generation_key() == EffectParams(mouse_radius=250, accent_color="#ff0000").generation_key()
    assert base.generation_key() != EffectParams(contrast=1.0).generation_key()
    assert base.generation_key() != EffectParams(size_variation=0.0).generation_key()


def test_settings_read_nested_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("EFFECT__CONTRAST", "2.0")
    monkeypatch.setenv("ANIMATION__FPS", "30")
    monkeypatch.setenv("PORT", "6123")
    settings = Settings(_env_file=None, log_directory=tmp_path)
    assert settings.effect.contrast == 2.0
    assert settings.effect.grid_spacing == 4
    assert settings.animation.fps == 30.0
    assert settings.port == 6123


def test_settings_read_env_file(tmp_path):
    env_file = tmp_path / "partixel.env"
    env_file.write_text("RANDOM_SEED=42\nRECORDING__SETTLE_MS=250\n", encoding="utf-8")
    settings = Settings(_env_file=str(env_file))
    assert settings.random_seed == 42
    assert settings.recording.settle_ms == 250.0


def test_configure_logging_writes_runtime_log(tmp_path):
    settings = Settings(_env_file=None, log_level="debug", log_directory=tmp_path / "logs", log_retention_days=3)
    log_file = configure_logging(settings)
    assert log_file == tmp_path / "logs" / "partixel-runtime.log"
    logging.getLogger("partixel.tests").debug("runtime log check")
    for handler in logging.getLogger().handlers:
        handler.flush()
    text = log_file.read_text(encoding="utf-8")
    assert "runtime log check" in text
    assert "| MainThread |" in text


def test_access_log_is_quieted(tmp_path):
    configure_logging(Settings(_env_file=None, log_directory=tmp_path))
    assert logging.getLogger("uvicorn.access").level == logging.WARNING
    assert logging.getLogger("partixel").level == logging.INFO

    configure_logging(Settings(_env_file=None, access_log_level="info"), log_dir=tmp_path)
    assert logging.getLogger("uvicorn.access").level == logging.INFO
