import numpy as np
import pytest
import torch

from losslayers import (
    AccuracyLayer,
    Blob,
    EuclideanLossLayer,
    HingeLossLayer,
    LayerConfig,
    LayerKind,
    MultinomialLogisticLossLayer,
    make_infogain_matrix,
    make_layers,
    make_probability_batch,
    make_regression_batch,
    run_layers,
    save_weight_matrix,
    split_batches,
)
from losslayers.default_params import PRESETS


def full_batch_value(layer, prediction, label):
    top = [Blob()] if layer.kind.num_top else []
    bottom = [prediction, label]
    layer.setup(bottom, top)
    loss = layer.forward(bottom, top)
    return loss.item(), (top[0].data.view(-1).tolist() if top else None)


def test_split_batches_sizes(rng):
    prediction, label = make_probability_batch(num=10, classes=3, rng=rng)

    batches = split_batches(prediction, label, 4)
    assert [p.num for p, _ in batches] == [4, 4, 2]
    assert torch.equal(batches[2][0].as_matrix(), prediction.as_matrix()[8:])

    dropped = split_batches(prediction, label, 4, drop_last=True)
    assert [p.num for p, _ in dropped] == [4, 4]


def test_split_batches_rejects_bad_sizes(rng):
    prediction, label = make_probability_batch(num=3, classes=3, rng=rng)
    with pytest.raises(ValueError):
        split_batches(prediction, label, 0)
    with pytest.raises(ValueError):
        split_batches(prediction, label, 4, drop_last=True)


def test_batched_summary_matches_full_batch(rng):
    prediction, label = make_probability_batch(num=12, classes=4, rng=rng)
    configs = [
        LayerConfig(kind=LayerKind.MultinomialLogistic),
        LayerConfig(kind=LayerKind.Hinge),
        LayerConfig(kind=LayerKind.Accuracy),
    ]

    results = run_layers(make_layers(configs), split_batches(prediction, label, 5), debug=False)

    ml_loss, _ = full_batch_value(MultinomialLogisticLossLayer(), prediction, label)
    hinge_loss, _ = full_batch_value(HingeLossLayer(), prediction, label)
    _, (accuracy, nll) = full_batch_value(AccuracyLayer(), prediction, label)

    assert results["multinomial_logistic"].summary()["loss"] == pytest.approx(ml_loss)
    assert results["hinge"].summary()["loss"] == pytest.approx(hinge_loss)
    summary = results["accuracy"].summary()
    assert summary["accuracy"] == pytest.approx(accuracy)
    assert summary["nll"] == pytest.approx(nll)
    assert "grad_norm" not in summary


def test_history_arrays(rng):
    prediction, target = make_regression_batch(num=9, channels=2, rng=rng)
    layers = {"l2": EuclideanLossLayer()}

    history = run_layers(layers, split_batches(prediction, target, 3), debug=False)["l2"]

    arrays = history.as_arrays()
    assert len(history) == 3
    assert arrays["loss"].shape == (3,)
    assert arrays["grad_norm"].shape == (3,)
    assert arrays["batch_size"].tolist() == [3, 3, 3]
    assert np.all(arrays["loss"] >= 0)
    assert history.metadata["backward"] is True


def test_forward_only_records_no_gradients(rng):
    prediction, label = make_probability_batch(num=4, classes=3, rng=rng)
    history = run_layers(
        {"hinge": HingeLossLayer()}, [(prediction, label)], backward=False, debug=False
    )["hinge"]

    assert history.grad_norms == []
    # caller's gradient buffer stays clean
    assert torch.all(prediction.diff == 0)


def test_run_layers_needs_batches():
    with pytest.raises(ValueError):
        run_layers({"hinge": HingeLossLayer()}, [], debug=False)


@pytest.mark.parametrize("preset", sorted(PRESETS))
def test_presets_build_and_run(preset, rng, tmp_path):
    task, factory = PRESETS[preset]
    if task == "regression":
        batch = make_regression_batch(num=8, rng=rng)
    else:
        batch = make_probability_batch(num=8, classes=4, rng=rng)

    if preset == "infogain":
        source = save_weight_matrix(tmp_path / "H.npy", make_infogain_matrix(4, off_diagonal=0.2))
        configs = factory(infogain_source=str(source))
    else:
        configs = factory()

    results = run_layers(make_layers(configs), [batch], debug=False)

    assert set(results) == {config.display_name for config in configs}
    for history in results.values():
        assert np.isfinite(history.summary()["loss"])
