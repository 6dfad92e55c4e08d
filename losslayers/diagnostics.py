"""
Diagnostic collaborators fed by the accuracy layer.

The accuracy layer hands each sink an AccuracyRecord after every forward
pass. Sinks only observe: their failure never changes the metric.
"""

from abc import ABC, abstractmethod
import logging
from pathlib import Path
from typing import IO, Optional, Union

from .types import AccuracyRecord

logger = logging.getLogger(__name__)


class PredictionSink(ABC):
    """Receives per-sample predictions after each accuracy forward pass."""

    @abstractmethod
    def write(self, record: AccuracyRecord) -> None:
        pass

    def close(self) -> None:
        pass


class PredictionLogWriter(PredictionSink):
    """
    Plain-text prediction log, one line per sample:

        index score_0 ... score_{dim-1} max_score true_score argmax label

    `index` is a running 1-based counter across all batches written.
    """

    def __init__(self, path: Union[str, Path], float_format: str = "{:.6g}"):
        self.path = Path(path)
        self.float_format = float_format
        self.index = 1
        self._file: Optional[IO[str]] = None

    def _open(self) -> IO[str]:
        if self._file is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.path, "w")
            logger.info("Writing prediction log to %s", self.path)
        return self._file

    def format_row(self, scores, predicted: int, label: int) -> str:
        fmt = self.float_format.format
        values = [float(v) for v in scores]
        fields = [str(self.index)]
        fields.extend(fmt(v) for v in values)
        fields.append(fmt(values[predicted]))
        fields.append(fmt(values[label]))
        fields.append(str(predicted))
        fields.append(str(label))
        return " ".join(fields)

    def write(self, record: AccuracyRecord) -> None:
        out = self._open()
        for scores, predicted, label in record.rows():
            out.write(self.format_row(scores.tolist(), predicted, label) + "\n")
            self.index += 1
        out.flush()

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> "PredictionLogWriter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"PredictionLogWriter(path='{self.path}')"
