"""EM/track/Michel tagging of hits, clusters and tracks with a point classifier."""

from __future__ import annotations

import logging
import math
from collections import Counter, defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol

_log = logging.getLogger(__name__)

PlaneKey = tuple[int, int, int]
HitMap = dict[PlaneKey, list[int]]

_NUM_VIEWS = 3
_COLLECTION_VIEW = 2


class EmTrackError(Exception):
    """Raised when tagging cannot be carried out."""


class _PointClassifier(Protocol):
    @property
    def output_labels(self) -> list[str]: ...

    def set_wire_drift_data(self, view: int, tpc: int, cryostat: int) -> None: ...

    def predict_id_vectors(self, points: Sequence[tuple[int, float]]) -> list[list[float]]: ...

    def is_inside_fiducial_region(self, wire: int, drift: float) -> bool: ...


@dataclass(frozen=True)
class Hit:
    """A reconstructed hit on a wire of a readout plane."""

    wire: int
    peak_time: float
    plane: int
    tpc: int = 0
    cryostat: int = 0

    @property
    def plane_key(self) -> PlaneKey:
        """The (cryostat, tpc, plane) the hit belongs to."""
        return (self.cryostat, self.tpc, self.plane)


@dataclass(frozen=True)
class HitCluster:
    """A tagged cluster: hit indices and the outputs accumulated from them."""

    id: int
    cryostat: int
    tpc: int
    view: int
    hits: tuple[int, ...]
    outputs: tuple[float, ...]


def _p_value(outputs: Sequence[float]) -> float:
    total = outputs[0] + outputs[1]
    return outputs[0] / total if total else math.nan


class EmTrack:
    """Tags hits with a point classifier and propagates the result to clusters and tracks.

    ``point_id`` must provide ``output_labels``, ``predict_id_vectors``,
    ``is_inside_fiducial_region`` and ``set_wire_drift_data(view, tpc,
    cryostat)``, the last loading the wire/drift data of one plane. Only
    planes whose view is listed in ``views`` are tagged, or all of them when
    ``views`` is empty.
    """

    def __init__(
        self, point_id: _PointClassifier, batch_size: int, views: Iterable[int] = ()
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.point_id = point_id
        self.batch_size = int(batch_size)
        self.views = tuple(views)
        self._hit_outputs: list[list[float]] | None = None
        self._hit_in_fa: list[bool] | None = None

    @property
    def _n_outputs(self) -> int:
        return len(self.point_id.output_labels)

    def is_view_selected(self, view: int) -> bool:
        """Tell whether hits of this view are to be tagged."""
        return not self.views or view in self.views

    def create_hitmap(self, hits: Sequence[Hit]) -> HitMap:
        """Group indices of hits in selected views by (cryostat, tpc, view)."""
        grouped: dict[PlaneKey, list[int]] = defaultdict(list)
        for index, hit in enumerate(hits):
            if self.is_view_selected(hit.plane):
                grouped[hit.plane_key].append(index)
        return {key: grouped[key] for key in sorted(grouped)}

    def classify_hits(
        self, hits: Sequence[Hit], hit_map: Mapping[PlaneKey, Sequence[int]]
    ) -> tuple[list[list[float]], list[bool]]:
        """Run the classifier on the mapped hits in batches.

        Returns the outputs of every hit (zeros for hits not classified) and,
        for every hit, whether it lies inside the fiducial region of its view.
        """
        outputs = [[0.0] * self._n_outputs for _ in hits]
        in_fa = [False] * len(hits)

        for key in sorted(hit_map):
            cryostat, tpc, view = key
            if not self.is_view_selected(view):
                continue
            self.point_id.set_wire_drift_data(view, tpc, cryostat)

            indices = list(hit_map[key])
            for start in range(0, len(indices), self.batch_size):
                batch = indices[start:start + self.batch_size]
                points = [(hits[h].wire, hits[h].peak_time) for h in batch]
                batch_out = self.point_id.predict_id_vectors(points)
                if len(batch_out) != len(points):
                    raise EmTrackError("hits processing failed")
                for h, (wire, drift), out in zip(batch, points, batch_out):
                    outputs[h] = list(out)
                    if self.point_id.is_inside_fiducial_region(wire, drift):
                        in_fa[h] = True

        self._hit_outputs = outputs
        self._hit_in_fa = in_fa
        return outputs, in_fa

    def _classified(self) -> tuple[list[list[float]], list[bool]]:
        if self._hit_outputs is None or self._hit_in_fa is None:
            raise EmTrackError("hits have not been classified")
        return self._hit_outputs, self._hit_in_fa

    def _accumulate(self, indices: Iterable[int]) -> list[float]:
        outputs, in_fa = self._classified()
        acc = [0.0] * self._n_outputs
        total = 0.0
        for h in indices:
            weight = 1.0 if in_fa[h] else 0.0
            if not weight:
                continue
            for i, value in enumerate(outputs[h]):
                acc[i] += weight * value
            total += weight
        if total > 0:
            acc = [value / total for value in acc]
        return acc

    def best_view(self, track_hits: Sequence[Hit]) -> int:
        """Choose the selected view best covered by a track's hits."""
        counts = Counter(hit.plane for hit in track_hits)
        n0, n1, n2 = counts[0], counts[1], counts[2]
        best = _COLLECTION_VIEW
        if n0 >= n1 and n0 > 2 * n2:
            best = 0
        if n1 >= n0 and n1 > 2 * n2:
            best = 1

        tries = 0
        while not self.is_view_selected(best):
            best = (best + 1) % _NUM_VIEWS
            tries += 1
            if tries > _NUM_VIEWS:
                raise EmTrackError("No views selected at all?")
        return best

    def make_clusters(
        self,
        hits: Sequence[Hit],
        cluster_hits: Sequence[Sequence[int]],
        hit_map: Mapping[PlaneKey, Sequence[int]],
    ) -> list[HitCluster]:
        """Build tagged clusters from input clusters plus single-hit clusters.

        ``cluster_hits`` holds the hit indices of each input cluster. In every
        plane holding an input cluster, hits not used by any cluster become
        clusters of their own.
        """
        outputs, _ = self._classified()

        by_plane: dict[PlaneKey, list[Sequence[int]]] = defaultdict(list)
        for members in cluster_hits:
            if not members:
                continue
            key = hits[members[0]].plane_key
            if self.is_view_selected(key[2]):
                by_plane[key].append(members)

        used = [False] * len(hits)
        clusters: list[HitCluster] = []
        for key in sorted(by_plane):
            cryostat, tpc, view = key
            for members in by_plane[key]:
                for h in members:
                    if used[h]:
                        _log.warning("hit already used in another cluster")
                    used[h] = True
                vout = self._accumulate(members)
                _log.debug(
                    "cluster in tpc:%d view:%d size:%d p:%s",
                    tpc, view, len(members), _p_value(vout),
                )
                clusters.append(
                    HitCluster(len(clusters), cryostat, tpc, view, tuple(members), tuple(vout))
                )

            if key not in hit_map:
                raise EmTrackError(f"no hits mapped for plane {key}")
            singles = 0
            for h in hit_map[key]:
                if used[h]:
                    continue
                vout = outputs[h]
                _log.debug(
                    "single hit in tpc:%d view:%d wire:%d drift:%s p:%s",
                    tpc, view, hits[h].wire, hits[h].peak_time, _p_value(vout),
                )
                clusters.append(
                    HitCluster(len(clusters), cryostat, tpc, view, (h,), tuple(vout))
                )
                singles += 1
            _log.debug("...produced %d single-hit clusters.", singles)
        return clusters

    def track_hits(self, tracks: Sequence[Sequence[int]]) -> list[list[float]]:
        """Tag each track with the outputs accumulated from its hits in the best view.

        Each track is given as the indices of its hits among the classified hits.
        """
        hit_outputs, _ = self._classified()
        if any(h >= len(hit_outputs) for track in tracks for h in track):
            raise IndexError("track refers to a hit that was not classified")
        return [self._accumulate(self._best_view_hits(track)) for track in tracks]

    def _best_view_hits(self, track: Sequence[int]) -> list[int]:
        hits = self._track_hit_objects
        selected = [hits[h] for h in track]
        view = self.best_view(selected)
        return [h for h in track if hits[h].plane == view]

    @property
    def _track_hit_objects(self) -> Sequence[Hit]:
        if self._hits is None:
            raise EmTrackError("hits have not been classified")
        return self._hits

    _hits: Sequence[Hit] | None = None

    def __setattr__(self, name: str, value: object) -> None:
        object.__setattr__(self, name, value)

    def _remember_hits(self, hits: Sequence[Hit]) -> None:
        self._hits = list(hits)