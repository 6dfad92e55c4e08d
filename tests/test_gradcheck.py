import pytest
import torch

from losslayers import (
    AccuracyLayer,
    Blob,
    EuclideanLossLayer,
    HingeLossLayer,
    InfogainLossLayer,
    MultinomialLogisticLossLayer,
    check_gradient,
    make_infogain_matrix,
    make_probability_batch,
    make_regression_batch,
)
from losslayers.constants import HINGE_MARGIN


def test_multinomial_logistic_gradient(rng):
    bottom = list(make_probability_batch(num=6, classes=4, rng=rng))
    result = check_gradient(MultinomialLogisticLossLayer(), bottom)

    assert result.passed, str(result)
    assert result.checked == 24


def test_infogain_gradient(rng):
    bottom = list(make_probability_batch(num=6, classes=4, rng=rng))
    layer = InfogainLossLayer(infogain=make_infogain_matrix(4, off_diagonal=0.5, rng=rng))
    result = check_gradient(layer, bottom)

    assert result.passed, str(result)


def test_euclidean_gradient(rng):
    bottom = list(make_regression_batch(num=4, channels=2, height=2, width=3, noise=0.5, rng=rng))
    result = check_gradient(EuclideanLossLayer(), bottom)

    assert result.passed, str(result)


def test_hinge_gradient_away_from_kinks(rng):
    scores = torch.from_numpy(rng.uniform(-2.0, 2.0, size=(6, 4)))
    bottom = [Blob.from_tensor(scores), Blob.from_tensor(rng.integers(0, 4, size=6).astype(float))]
    result = check_gradient(
        HingeLossLayer(),
        bottom,
        kinks=(-HINGE_MARGIN, HINGE_MARGIN),
        kink_range=1e-4,
    )

    assert result.passed, str(result)


def test_check_restores_prediction(rng):
    bottom = list(make_probability_batch(num=3, classes=3, rng=rng))
    before = bottom[0].data.clone()

    check_gradient(MultinomialLogisticLossLayer(), bottom)

    assert torch.equal(bottom[0].data, before)


class DoubledGradient(MultinomialLogisticLossLayer):
    def _backward(self, top, bottom):
        super()._backward(top, bottom)
        bottom[0].diff.mul_(2.0)


def test_wrong_gradient_is_detected(reference_batch):
    result = check_gradient(DoubledGradient(), reference_batch)

    assert not result.passed
    assert result.worst_index in (0, 5)
    assert "FAIL" in str(result)


def test_metric_layers_cannot_be_checked(reference_batch):
    with pytest.raises(ValueError):
        check_gradient(AccuracyLayer(), reference_batch, top=[Blob()])
