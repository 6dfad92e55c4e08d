import pytest

from losslayers import (
    AccuracyLayer,
    ArityMismatch,
    Blob,
    EuclideanLossLayer,
    HingeLossLayer,
    InfogainLossLayer,
    LabelOutOfRange,
    LayerConfig,
    LayerError,
    LayerKind,
    LayerSetupError,
    MultinomialLogisticLossLayer,
    ShapeMismatch,
)

from conftest import make_bottom

LABEL_LAYERS = [
    MultinomialLogisticLossLayer,
    HingeLossLayer,
    lambda: InfogainLossLayer(infogain=[[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]]),
]


def tops_for(layer):
    return [Blob() for _ in range(layer.kind.num_top)]


@pytest.mark.parametrize("factory", LABEL_LAYERS + [AccuracyLayer])
def test_wrong_number_of_bottoms(factory, reference_batch):
    layer = factory()
    with pytest.raises(ArityMismatch):
        layer.setup(reference_batch[:1], tops_for(layer))


def test_wrong_number_of_tops(reference_batch):
    with pytest.raises(ArityMismatch):
        MultinomialLogisticLossLayer().setup(reference_batch, [Blob()])
    with pytest.raises(ArityMismatch):
        AccuracyLayer().setup(reference_batch, [])


@pytest.mark.parametrize("factory", LABEL_LAYERS + [AccuracyLayer])
def test_batch_size_mismatch(factory):
    layer = factory()
    bottom = make_bottom([[0.7, 0.2, 0.1], [0.1, 0.1, 0.8]], [0])
    with pytest.raises(ShapeMismatch):
        layer.setup(bottom, tops_for(layer))


@pytest.mark.parametrize("factory", LABEL_LAYERS + [AccuracyLayer])
def test_label_must_be_one_value_per_sample(factory):
    layer = factory()
    bottom = make_bottom([[0.7, 0.2, 0.1], [0.1, 0.1, 0.8]], [[0, 1], [2, 0]])
    with pytest.raises(ShapeMismatch):
        layer.setup(bottom, tops_for(layer))


def test_euclidean_shapes_must_match():
    bottom = [Blob.from_tensor([[1.0, 2.0]]), Blob.from_tensor([[1.0, 2.0, 3.0]])]
    with pytest.raises(ShapeMismatch):
        EuclideanLossLayer().setup(bottom)


def test_euclidean_accepts_any_matching_shape():
    bottom = [Blob(2, 3, 4, 5), Blob(2, 3, 4, 5)]
    layer = EuclideanLossLayer()
    layer.setup(bottom)

    assert layer.forward(bottom).item() == 0.0


def test_check_setup_returns_error_without_raising(reference_batch):
    layer = MultinomialLogisticLossLayer()

    error = layer.check_setup(reference_batch[:1])

    assert isinstance(error, ArityMismatch)
    assert isinstance(error, LayerSetupError)
    assert isinstance(error, ValueError)
    assert layer.check_setup(reference_batch) is None
    assert not layer.is_setup


def test_forward_before_setup_is_an_error(reference_batch):
    with pytest.raises(LayerError):
        HingeLossLayer().forward(reference_batch)


@pytest.mark.parametrize("label", [3, -1])
@pytest.mark.parametrize("factory", LABEL_LAYERS + [AccuracyLayer])
def test_label_out_of_range(factory, label):
    layer = factory()
    top = tops_for(layer)
    bottom = make_bottom([[0.7, 0.2, 0.1], [0.1, 0.1, 0.8]], [0, label])
    layer.setup(bottom, top)

    with pytest.raises(LabelOutOfRange):
        layer.forward(bottom, top)


def test_config_kind_must_match_layer():
    with pytest.raises(ValueError):
        HingeLossLayer(LayerConfig(kind=LayerKind.Euclidean))


def test_layer_name_comes_from_config():
    layer = HingeLossLayer(LayerConfig(kind=LayerKind.Hinge, name="svm"))
    assert layer.name == "svm"
    assert HingeLossLayer().name == "hinge"
