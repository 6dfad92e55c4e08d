from pathlib import Path

import pytest
import yaml

from losslayers import (
    AccuracyLayer,
    HingeLossLayer,
    InfogainLossLayer,
    LayerConfig,
    LayerKind,
    PredictionLogWriter,
    load_layer_configs,
    make_layer,
    make_layers,
    parse_layer_configs,
)
from losslayers.constants import LOG_THRESHOLD

CONFIG_DIR = Path(__file__).resolve().parent.parent / "configs"


def test_load_yaml_file(tmp_path):
    path = tmp_path / "layers.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "layers": [
                    {"kind": "multinomial_logistic", "name": "loss"},
                    {"kind": "infogain", "infogain_source": "weights/H.npy"},
                    {"kind": "Accuracy", "log_threshold": "1e-10"},
                ]
            }
        )
    )

    configs = load_layer_configs(path)

    assert [c.kind for c in configs] == [
        LayerKind.MultinomialLogistic,
        LayerKind.Infogain,
        LayerKind.Accuracy,
    ]
    assert configs[0].display_name == "loss"
    # relative sources resolve against the config file's directory
    assert configs[1].infogain_source == str(tmp_path / "weights" / "H.npy")
    assert configs[2].log_threshold == 1e-10
    assert configs[0].log_threshold == LOG_THRESHOLD


def test_absolute_source_kept_as_is(tmp_path):
    source = str(tmp_path / "H.npy")
    configs = parse_layer_configs({"layers": [{"kind": "infogain", "infogain_source": source}]}, base_dir="/elsewhere")

    assert configs[0].infogain_source == source


@pytest.mark.parametrize(
    "document",
    [
        None,
        {"layer": []},
        {"layers": []},
        {"layers": "hinge"},
        {"layers": ["hinge"]},
        {"layers": [{"name": "missing-kind"}]},
        {"layers": [{"kind": "hinge", "margin": 2}]},
        {"layers": [{"kind": "softmax"}]},
        {"layers": [{"kind": "hinge", "infogain_source": "H.npy"}]},
        {"layers": [{"kind": "hinge", "log_threshold": 0}]},
    ],
)
def test_invalid_documents(document):
    with pytest.raises(ValueError):
        parse_layer_configs(document)


def test_shipped_configs_parse():
    for path in sorted(CONFIG_DIR.glob("*.yaml")):
        configs = load_layer_configs(path)
        assert configs, path


def test_kind_lookup():
    assert LayerKind.from_name("hinge") is LayerKind.Hinge
    assert LayerKind.from_name("MultinomialLogistic") is LayerKind.MultinomialLogistic
    with pytest.raises(ValueError):
        LayerKind.from_name("l2")


def test_kind_arity():
    assert LayerKind.Accuracy.num_top == 1
    assert not LayerKind.Accuracy.differentiable
    assert all(kind.num_bottom == 2 for kind in LayerKind)
    assert [kind for kind in LayerKind if not kind.requires_label] == [LayerKind.Euclidean]


def test_config_is_hashable():
    a = LayerConfig.with_params("hinge", name="svm")
    b = LayerConfig(kind=LayerKind.Hinge, name="svm")
    assert a == b
    assert len({a, b}) == 1


def test_make_layer_picks_class():
    assert isinstance(make_layer(LayerConfig(kind=LayerKind.Hinge)), HingeLossLayer)
    assert isinstance(make_layer(LayerConfig(kind=LayerKind.Infogain)), InfogainLossLayer)


def test_sinks_only_for_accuracy(tmp_path):
    writer = PredictionLogWriter(tmp_path / "log.txt")

    layer = make_layer(LayerConfig(kind=LayerKind.Accuracy), sinks=[writer])
    assert isinstance(layer, AccuracyLayer)
    assert layer.sinks == [writer]

    with pytest.raises(ValueError):
        make_layer(LayerConfig(kind=LayerKind.Hinge), sinks=[writer])


def test_make_layers_rejects_duplicate_names():
    configs = [LayerConfig(kind=LayerKind.Hinge), LayerConfig(kind=LayerKind.Hinge)]
    with pytest.raises(ValueError):
        make_layers(configs)

    configs[1] = LayerConfig(kind=LayerKind.Hinge, name="hinge2")
    assert list(make_layers(configs)) == ["hinge", "hinge2"]
