# emtrackid

Building blocks for tagging hits in liquid-argon TPC events as EM-shower,
track or Michel-electron-like with a point-classifying network. Two
utilities come with them: a waveform region-of-interest scanner and a
streaming `.npy` writer. The package has no dependencies outside the
standard library.

## Installation

```
pip install .
```

## Modules

### `emtrackid.npywriter`

`NpyWriter(prefix, rows_per_file)` streams rows of a structured record array
into `<prefix>0.npy`, `<prefix>1.npy`, and so on. Each file holds at most
`rows_per_file` rows. When a file is full, the next value written opens the
next file.

- `add_column(name, column_type)` adds a column. Columns must all be added
  before the first value is written.
- `write(value)` writes one value into the current column.
- `write_row(*values)` writes one whole row.
- `close()` closes the open file. If that file holds fewer rows than
  `rows_per_file`, its header's shape is rewritten to the real count. The
  writer is also a context manager that calls `close()` on exit.

Column types are the members of `ColumnType`: booleans, signed and unsigned
integers, `FLOAT16`/`FLOAT32`/`FLOAT64` and complex numbers. Byte-string
columns of a fixed size from 1 to 154 come from `string_column(size)`. Longer
strings are cut to that size and shorter ones are padded with zero bytes.
`descr(column_type)` gives the NumPy type descriptor of a column type, for
example `"<f8"` or `"|S8"`. A value that does not fit its column raises
`NpyWriterError`.

```python
from emtrackid.npywriter import ColumnType, NpyWriter, string_column

with NpyWriter("events", rows_per_file=1000) as writer:
    writer.add_column("run", ColumnType.INT32)
    writer.add_column("energy", ColumnType.FLOAT64)
    writer.add_column("tag", string_column(8))
    writer.write_row(1, 2.5, b"shower")
```

This writes `events0.npy`, which `numpy.load` reads as one record.

### `emtrackid.waveform`

`WaveformRecognizer(params)` is an abstract base class. It scans a waveform
with windows of `ScanWindowSize` ticks placed `StrideLength` ticks apart, and
adds a shorter last window that reaches the end of the waveform. Each tick is
standardised with a mean and a scale. These come either from the files named
by `MeanFilename` and `ScaleFilename` (whitespace-separated numbers, one per
tick) or from the constants `CnnMean` and `CnnScale`. Other keys are
`CnnPredCut` (default 0.5) and `WaveformSize`.

Subclasses implement `predict_waveform_type(windows)`, which returns class
probabilities for each window.

- `find_roi(adc)` flags the ticks that lie in a window whose first
  probability is above `CnnPredCut`.
- `pred_roi(adc)` gives each tick the first probability of the last window
  that covers it.

An input whose length differs from `WaveformSize` gives all `False` or all
`0.0`. `find_file(name)` looks for a file in the directories of the
`FW_SEARCH_PATH` environment variable, and then at the name itself. If the
file is in neither place it raises `FileNotFoundError`. An inconsistent
configuration raises `WaveformConfigError`.

### `emtrackid.pointid`

`PointIdAlg` is an abstract base class for point classifiers. It cuts a patch
of `patch_size_w` × `patch_size_d` around a (wire, drift) point and applies a
model to it. Subclasses supply four methods:

- `run(patch)` and `run_batch(patches, samples)`, which apply the model;
- `patch_from_downsampled_view(...)` and `patch_from_original_view(...)`,
  which fill a patch from the loaded view.

It provides these:

- `predict_id_value(wire, drift, out_idx)` returns one output for a point.
- `predict_id_vector(wire, drift)` returns all outputs for a point.
- `predict_id_vectors(points)` evaluates several points as one batch. It
  raises `PatchBufferingError` when a patch cannot be filled.
- `is_inside_fiducial_region(wire, drift)` tells whether a point lies at least
  one eighth of a patch away from the edges of the view.
- `output_labels` lists the labels of the network outputs.

### `emtrackid.emtrack`

`EmTrack(point_id, batch_size, views)` tags `Hit` objects with a point
classifier. The `point_id` object needs `output_labels`, `predict_id_vectors`,
`is_inside_fiducial_region` and `set_wire_drift_data(view, tpc, cryostat)`.
Only hits in the listed `views` are tagged, or hits in all views when the list
is empty.

- `create_hitmap(hits)` groups hit indices by (cryostat, TPC, view).
- `classify_hits(hits, hit_map)` classifies the mapped hits in batches of
  `batch_size`. It returns each hit's outputs and whether the hit lies in the
  fiducial region.
- `make_clusters(hits, cluster_hits, hit_map)` must be called after
  `classify_hits`. It returns `HitCluster` records. Each input cluster gets
  the mean outputs of its fiducial hits. In each plane that holds an input
  cluster, every unused hit becomes a single-hit cluster with its own outputs.
- `best_view(track_hits)` picks the selected view that is best covered by a
  track's hits. It raises `EmTrackError` when no view is selected.
- `track_hits(tracks)` takes each track as hit indices. It gives the track the
  mean outputs of its fiducial hits in its best view. It needs the hit objects
  to be known to the `EmTrack` instance, and `classify_hits` does not record
  them. Called after `classify_hits` alone, it raises `EmTrackError`.

## What the package does not do

- It contains no trained network and no inference client. Model evaluation is
  left to subclasses of `PointIdAlg` and `WaveformRecognizer`.
- It does not read event files or detector data. Hits, clusters, tracks and
  the wire/drift view are supplied by the caller.
- It installs no command-line program.

## Tests

```
pip install .[test]
pytest
```