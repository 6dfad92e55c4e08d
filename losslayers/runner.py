import torch
from typing import Dict, Iterable, List, Sequence, Tuple
from tqdm import tqdm

from .blob import Blob
from .history import LayerHistory
from .layer import Layer
from .types import LayerKind

Batch = Tuple[Blob, Blob]


def _print_layer_configs(layers: Dict[str, Layer]) -> None:
    """
    Print layer configurations in a condensed format.

    Groups layers by kind and marks which of them will run backward.
    """
    grouped: Dict[LayerKind, List[str]] = {}
    for name, layer in layers.items():
        grouped.setdefault(layer.kind, []).append(name)

    print(f"Running {len(layers)} layers:")
    for kind in sorted(grouped.keys(), key=lambda k: k.value):
        role = "loss" if kind.differentiable else "metric"
        print(f"  - {kind.value} ({role}): {', '.join(grouped[kind])}")


def run_layers(
    layers: Dict[str, Layer],
    batches: Sequence[Batch],
    backward: bool = True,
    debug: bool = True,
) -> Dict[str, LayerHistory]:
    """
    Drive each layer through setup, forward and (optionally) backward.

    Every layer gets its own copy of the gradient buffer so that the gradient
    norms of different losses do not overwrite each other.

    Args:
        layers: Dict mapping display name to layer (not yet set up)
        batches: Sequence of (prediction, label/target) blob pairs
        backward: Run backward on differentiable layers
        debug: Print the layer summary and show progress bars

    Returns:
        results[name] = LayerHistory
    """
    if not batches:
        raise ValueError("run_layers needs at least one batch")

    if debug:
        _print_layer_configs(layers)

    results: Dict[str, LayerHistory] = {}

    for name, layer in layers.items():
        history = LayerHistory(
            layer=name,
            metadata={
                "kind": layer.kind.value,
                "num_batches": len(batches),
                "backward": backward and layer.differentiable,
            },
        )
        top = [Blob(dtype=batches[0][0].dtype)] if layer.kind.num_top else []

        iterator: Iterable[Batch] = tqdm(batches, desc=name) if debug else batches
        for step, (prediction, label) in enumerate(iterator):
            # Private blobs per layer: the engine would hand each loss its own bottom diff
            bottom = [
                Blob.from_tensor(prediction.data, dtype=prediction.dtype, device=prediction.device),
                label,
            ]
            if step == 0:
                layer.setup(bottom, top)

            try:
                loss = layer.forward(bottom, top)
                grad_norm = None
                if backward and layer.differentiable:
                    layer.backward(top, bottom)
                    grad_norm = torch.linalg.vector_norm(bottom[0].diff)
            except Exception as e:
                print(f"Error in {name} at batch {step}: {e}")
                raise e

            history.record(
                loss,
                batch_size=prediction.num,
                output=top[0].data if top else None,
                grad_norm=grad_norm,
            )

        results[name] = history

    return results
