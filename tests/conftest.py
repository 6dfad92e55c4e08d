import numpy as np
import pytest
import torch

from losslayers import Blob


def make_bottom(predictions, labels):
    """[prediction, label] blobs from nested lists."""
    return [Blob.from_tensor(predictions), Blob.from_tensor(labels)]


@pytest.fixture
def reference_batch():
    """N=2, C=3 probabilities whose arg-max matches the label for both samples."""
    return make_bottom([[0.7, 0.2, 0.1], [0.1, 0.1, 0.8]], [0, 2])


@pytest.fixture
def rng():
    return np.random.default_rng(1701)


@pytest.fixture(autouse=True)
def _seed_torch():
    torch.manual_seed(0)
