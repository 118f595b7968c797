"""Region-of-interest finding on waveforms by scanning them with a window classifier."""

from __future__ import annotations

import abc
import logging
import math
import os
from collections.abc import Mapping, Sequence
from typing import Any

_log = logging.getLogger(__name__)

SEARCH_PATH_VARIABLE = "FW_SEARCH_PATH"


class WaveformConfigError(Exception):
    """Raised when the waveform recognizer is configured inconsistently."""


def find_file(file_name: str | os.PathLike[str]) -> str:
    """Locate a file on the search path, falling back to the name itself.

    The directories listed in the ``FW_SEARCH_PATH`` environment variable are
    tried in order; if none holds the file, the name is used as given when it
    exists. Raises :class:`FileNotFoundError` otherwise.
    """
    name = os.fspath(file_name)
    for directory in os.environ.get(SEARCH_PATH_VARIABLE, "").split(os.pathsep):
        if not directory:
            continue
        candidate = os.path.join(directory, name)
        if os.path.isfile(candidate):
            return candidate
    if os.path.exists(name):
        return name
    raise FileNotFoundError(f"Could not find the model file {name}")


def _read_values(path: str) -> list[float]:
    values: list[float] = []
    with open(path, encoding="utf-8") as stream:
        for token in stream.read().split():
            try:
                values.append(float(token))
            except ValueError:
                break
    return values


def _load_vector(file_name: str, what: str, size: int) -> list[float]:
    path = find_file(file_name)
    try:
        values = _read_values(path)
    except OSError as err:
        raise WaveformConfigError(f"failed opening StdScaler {what} file") from err
    if len(values) != size:
        raise WaveformConfigError(
            f"vector of {what} values does not match waveform size"
        )
    return values


class WaveformRecognizer(abc.ABC):
    """Scans a waveform with overlapping windows classified by a model.

    ``params`` is a mapping with the keys ``CnnPredCut`` (0.5),
    ``WaveformSize`` (0), ``MeanFilename`` and ``ScaleFilename`` (empty),
    ``CnnMean`` (0.0), ``CnnScale`` (1.0), ``ScanWindowSize`` (0) and
    ``StrideLength`` (0). When both file names are given, the per-bin mean
    and scale used to standardise the waveform are read from those files;
    otherwise the constant ``CnnMean`` and ``CnnScale`` are used.
    """

    def __init__(self, params: Mapping[str, Any]) -> None:
        self.pred_cut = float(params.get("CnnPredCut", 0.5))
        self.waveform_size = int(params.get("WaveformSize", 0))
        mean_file = str(params.get("MeanFilename", ""))
        scale_file = str(params.get("ScaleFilename", ""))

        if mean_file and scale_file:
            self._mean = _load_vector(mean_file, "mean", self.waveform_size)
            self._scale = _load_vector(scale_file, "scale", self.waveform_size)
        else:
            mean = float(params.get("CnnMean", 0.0))
            scale = float(params.get("CnnScale", 1.0))
            self._mean = [mean] * self.waveform_size
            self._scale = [scale] * self.waveform_size

        self.window_size = int(params.get("ScanWindowSize", 0))
        self.stride_length = int(params.get("StrideLength", 0))
        self.num_strides = 0
        self.last_window_size = 0

        if self.waveform_size > 0 and self.window_size > 0:
            if self.stride_length <= 0:
                raise WaveformConfigError("StrideLength must be positive")
            distance = self.waveform_size - self.window_size
            if distance < 0:
                raise WaveformConfigError("ScanWindowSize exceeds WaveformSize")
            self.num_strides = math.ceil(distance / self.stride_length)
            overshoot = (
                self.num_strides * self.stride_length + self.window_size - self.waveform_size
            )
            self.last_window_size = self.window_size - overshoot
            _log.info(
                "WaveformRoiFinder: WindowSize = %d, StrideLength = %d, "
                "NumStrides = %d, overshoot = %d, LastWindowSize = %d, numwindows = %d",
                self.window_size,
                self.stride_length,
                self.num_strides,
                overshoot,
                self.last_window_size,
                self.num_strides + 1,
            )

    @abc.abstractmethod
    def predict_waveform_type(self, windows: list[list[float]]) -> list[list[float]]:
        """Return class probabilities for each window of the waveform."""

    def _window_starts(self) -> list[int]:
        return [i * self.stride_length for i in range(self.num_strides)]

    def _scan(self, adc: Sequence[float]) -> list[list[float]]:
        scaled = [
            (value - mean) / scale for value, mean, scale in zip(adc, self._mean, self._scale)
        ]
        windows = [scaled[start:start + self.window_size] for start in self._window_starts()]
        start = self.num_strides * self.stride_length
        last = scaled[start:start + self.last_window_size]
        windows.append(last + [0.0] * (self.window_size - len(last)))
        return self.predict_waveform_type(windows)

    def find_roi(self, adc: Sequence[float]) -> list[bool]:
        """Flag each time bin that lies in a window classified as signal."""
        flags = [False] * self.waveform_size
        if len(adc) != self.waveform_size:
            return flags
        predictions = self._scan(adc)
        for start, prediction in zip(self._window_starts(), predictions):
            if prediction[0] > self.pred_cut:
                end = min(start + self.window_size, self.waveform_size)
                flags[start:end] = [True] * (end - start)
        if predictions[self.num_strides][0] > self.pred_cut:
            start = self.num_strides * self.stride_length
            end = start + self.last_window_size
            flags[start:end] = [True] * (end - start)
        return flags

    def pred_roi(self, adc: Sequence[float]) -> list[float]:
        """Give each time bin the signal probability of the last window covering it."""
        probabilities = [0.0] * self.waveform_size
        if len(adc) != self.waveform_size:
            return probabilities
        predictions = self._scan(adc)
        for start, prediction in zip(self._window_starts(), predictions):
            end = min(start + self.window_size, self.waveform_size)
            probabilities[start:end] = [prediction[0]] * (end - start)
        start = self.num_strides * self.stride_length
        end = start + self.last_window_size
        probabilities[start:end] = [predictions[self.num_strides][0]] * (end - start)
        return probabilities