import argparse
import sys

import numpy as np
import pytest

import run
from losslayers import InfogainLossLayer, LayerKind, make_infogain_matrix, save_weight_matrix


def cli_args(**overrides):
    args = dict(
        preset=None,
        config=None,
        data=None,
        num=None,
        classes=None,
        seed=42,
        batch_size=None,
        infogain=None,
        prediction_log=None,
        no_backward=False,
        quiet=True,
    )
    args.update(overrides)
    return argparse.Namespace(**args)


@pytest.fixture
def infogain_file(tmp_path):
    return str(save_weight_matrix(tmp_path / "H.npy", make_infogain_matrix(4, off_diagonal=0.3)))


@pytest.fixture
def infogain_config(tmp_path):
    path = tmp_path / "layers.yaml"
    path.write_text("layers:\n  - kind: infogain\n  - kind: accuracy\n")
    return str(path)


def test_infogain_file_fills_yaml_layers_without_source(infogain_config, infogain_file, rng):
    task, configs = run.resolve_configs(cli_args(config=infogain_config, infogain=infogain_file))

    assert task == "classification"
    infogain = [c for c in configs if c.kind is LayerKind.Infogain]
    assert [c.infogain_source for c in infogain] == [infogain_file]

    layers = run.build_layers(configs, 4, rng, None)
    layer = layers["infogain"]
    assert isinstance(layer, InfogainLossLayer)
    assert layer.config.infogain_source == infogain_file


def test_named_source_is_not_overridden(tmp_path, infogain_file):
    own = str(save_weight_matrix(tmp_path / "own.npy", np.eye(4)))
    path = tmp_path / "layers.yaml"
    path.write_text(f"layers:\n  - kind: infogain\n    infogain_source: {own}\n")

    _, configs = run.resolve_configs(cli_args(config=str(path), infogain=infogain_file))

    assert configs[0].infogain_source == own


def test_infogain_preset_uses_file(infogain_file):
    _, configs = run.resolve_configs(cli_args(preset="infogain", infogain=infogain_file))

    assert configs[0].infogain_source == infogain_file


def test_random_matrix_only_without_file(infogain_config, rng, capsys):
    _, configs = run.resolve_configs(cli_args(config=infogain_config))
    run.build_layers(configs, 4, rng, None)

    assert "using a random 4x4" in capsys.readouterr().out


def test_main_with_config_and_infogain_file(infogain_config, infogain_file, monkeypatch, capsys):
    monkeypatch.setattr(
        sys,
        "argv",
        [
            "run.py",
            "--config", infogain_config,
            "--infogain", infogain_file,
            "--num", "16",
            "--classes", "4",
            "--quiet",
        ],
    )

    run.main()

    out = capsys.readouterr().out
    assert "random" not in out
    assert "SUMMARY" in out
