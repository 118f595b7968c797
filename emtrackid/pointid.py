"""Point identification: classify [wire, drift] points of a 2D projection with a model."""

from __future__ import annotations

import abc
import logging
from collections.abc import Sequence

_log = logging.getLogger(__name__)

_UNSET_POSITION = 99999

Patch = list[list[float]]


class PatchBufferingError(Exception):
    """Raised when the patch around a point cannot be filled."""


class PointIdAlg(abc.ABC):
    """Base of point classifiers that apply a network to patches around points.

    Subclasses supply the model (``run`` and ``run_batch``) and the way a
    patch is cut out of the wire/drift view (``patch_from_downsampled_view``
    and ``patch_from_original_view``). ``n_wires``, ``n_scaled_drifts`` and
    ``drift_window`` describe the view currently loaded and may be updated
    when another view is loaded.
    """

    def __init__(
        self,
        output_labels: Sequence[str],
        patch_size_w: int,
        patch_size_d: int,
        n_wires: int,
        n_scaled_drifts: int,
        drift_window: float,
        downscale_full_view: bool = True,
    ) -> None:
        self._output_labels = list(output_labels)
        self.patch_size_w = int(patch_size_w)
        self.patch_size_d = int(patch_size_d)
        self.n_wires = int(n_wires)
        self.n_scaled_drifts = int(n_scaled_drifts)
        self.drift_window = float(drift_window)
        self.downscale_full_view = bool(downscale_full_view)
        self._current_wire: int = _UNSET_POSITION
        self._current_drift: float = _UNSET_POSITION
        self._patch = self._empty_patch()

    def _empty_patch(self) -> Patch:
        return [[0.0] * self.patch_size_d for _ in range(self.patch_size_w)]

    @abc.abstractmethod
    def run(self, patch: Patch) -> list[float]:
        """Apply the model to one patch; an empty list means failure."""

    @abc.abstractmethod
    def run_batch(self, patches: Sequence[Patch], samples: int = -1) -> list[list[float]]:
        """Apply the model to the first ``samples`` patches (all if -1)."""

    @abc.abstractmethod
    def patch_from_downsampled_view(
        self, wire: int, drift: float, size_w: int, size_d: int, patch: Patch
    ) -> bool:
        """Fill ``patch`` from the downsampled view; return False on failure."""

    @abc.abstractmethod
    def patch_from_original_view(
        self, wire: int, drift: float, size_w: int, size_d: int, patch: Patch
    ) -> bool:
        """Fill ``patch`` from the full-resolution view; return False on failure."""

    @property
    def output_labels(self) -> list[str]:
        """Labels of the network outputs."""
        return list(self._output_labels)

    def _buffer_patch(self, wire: int, drift: float, patch: Patch | None = None) -> bool:
        if patch is None:
            patch = self._patch
        if self.downscale_full_view:
            scaled = int(drift / self.drift_window)
            if self._current_wire == wire and self._current_drift == scaled:
                return True
            self._current_wire = wire
            self._current_drift = scaled
            return self.patch_from_downsampled_view(
                wire, drift, self.patch_size_w, self.patch_size_d, patch
            )
        if self._current_wire == wire and self._current_drift == drift:
            return True
        self._current_wire = wire
        self._current_drift = int(drift)
        return self.patch_from_original_view(
            wire, drift, self.patch_size_w, self.patch_size_d, patch
        )

    def predict_id_value(self, wire: int, drift: float, out_idx: int = 0) -> float:
        """Return one output of the model for the point, or 0.0 on failure."""
        if not self._buffer_patch(wire, drift):
            _log.error("Patch buffering failed.")
            return 0.0
        out = self.run(self._patch)
        if not out:
            _log.error("Problem with applying model to input.")
            return 0.0
        return out[out_idx]

    def predict_id_vector(self, wire: int, drift: float) -> list[float]:
        """Return all model outputs for the point, or an empty list on failure."""
        if not self._buffer_patch(wire, drift):
            _log.error("Patch buffering failed.")
            return []
        result = list(self.run(self._patch))
        if not result:
            _log.error("Problem with applying model to input.")
        return result

    def predict_id_vectors(self, points: Sequence[tuple[int, float]]) -> list[list[float]]:
        """Return model outputs for each (wire, drift) point, evaluated as one batch."""
        if not points:
            return []
        patches = []
        for wire, drift in points:
            patch = self._empty_patch()
            if not self._buffer_patch(wire, drift, patch):
                raise PatchBufferingError("Patch buffering failed")
            patches.append(patch)
        return self.run_batch(patches)

    def is_inside_fiducial_region(self, wire: int, drift: float) -> bool:
        """Tell whether the point lies far enough from the edges of the view."""
        margin_w = self.patch_size_w // 8
        margin_d = self.patch_size_d // 8
        scaled = int(drift / self.drift_window)
        return (
            margin_w <= wire < self.n_wires - margin_w
            and margin_d <= scaled < self.n_scaled_drifts - margin_d
        )