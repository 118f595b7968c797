import pytest

from emtrackid.waveform import WaveformConfigError, WaveformRecognizer, find_file


class FixedModel(WaveformRecognizer):
    def __init__(self, params, predictions=None):
        super().__init__(params)
        self.predictions = predictions
        self.seen = []

    def predict_waveform_type(self, windows):
        self.seen.append([list(w) for w in windows])
        if self.predictions is None:
            return [[0.0] for _ in windows]
        return [[p] for p in self.predictions]


def _configure(params):
    """Run the package's own configuration on a bare model instance."""
    model = FixedModel.__new__(FixedModel)
    model.predictions = None
    model.seen = []
    WaveformRecognizer.__init__(model, params)
    return model


BASE = {"WaveformSize": 11, "ScanWindowSize": 4, "StrideLength": 3}


def test_windows_cover_waveform_with_zero_padding():
    model = FixedModel(BASE)
    WaveformRecognizer.find_roi(model, [float(x) for x in range(11)])
    assert model.seen == [
        [
            [0.0, 1.0, 2.0, 3.0],
            [3.0, 4.0, 5.0, 6.0],
            [6.0, 7.0, 8.0, 9.0],
            [9.0, 10.0, 0.0, 0.0],
        ]
    ]


def test_find_roi_flags_signal_windows():
    model = FixedModel(BASE, predictions=[0.9, 0.1, 0.1, 0.8])
    flags = WaveformRecognizer.find_roi(model, [0.0] * 11)
    assert flags == [True] * 4 + [False] * 5 + [True] * 2


def test_pred_roi_later_windows_overwrite():
    model = FixedModel(BASE, predictions=[0.9, 0.1, 0.3, 0.8])
    probs = WaveformRecognizer.pred_roi(model, [0.0] * 11)
    assert probs == [0.9, 0.9, 0.9, 0.1, 0.1, 0.1, 0.3, 0.3, 0.3, 0.8, 0.8]


def test_wrong_size_input_gives_default_output():
    model = FixedModel(BASE, predictions=[1.0, 1.0, 1.0, 1.0])
    assert WaveformRecognizer.find_roi(model, [1.0] * 5) == [False] * 11
    assert WaveformRecognizer.pred_roi(model, [1.0] * 12) == [0.0] * 11
    assert model.seen == []


def test_cut_is_strict():
    params = dict(BASE, CnnPredCut=0.8)
    model = FixedModel(params, predictions=[0.8, 0.8, 0.8, 0.8])
    flags = WaveformRecognizer.find_roi(model, [0.0] * 11)
    assert flags == [False] * 11


def test_constant_mean_and_scale_standardise():
    params = dict(BASE, CnnMean=1.0, CnnScale=2.0)
    model = FixedModel(params)
    adc = [float(x) for x in range(11)]
    probs = WaveformRecognizer.pred_roi(model, adc)
    assert probs == [0.0] * 11
    first = model.seen[0][0]
    assert first == pytest.approx([-0.5, 0.0, 0.5, 1.0])


def test_mean_and_scale_files(tmp_path):
    (tmp_path / "mean.txt").write_text(" ".join(["2"] * 11))
    (tmp_path / "scale.txt").write_text("\n".join(["4"] * 11))
    params = dict(
        BASE,
        MeanFilename=str(tmp_path / "mean.txt"),
        ScaleFilename=str(tmp_path / "scale.txt"),
    )
    model = FixedModel(params)
    flags = WaveformRecognizer.find_roi(model, [10.0] * 11)
    assert flags == [False] * 11
    assert model.seen[0][1] == pytest.approx([2.0] * 4)


def test_mean_file_of_wrong_size(tmp_path, monkeypatch):
    (tmp_path / "mean.txt").write_text("1 2 3")
    (tmp_path / "scale.txt").write_text(" ".join(["1"] * 11))
    monkeypatch.delenv("FW_SEARCH_PATH", raising=False)
    params = dict(
        BASE,
        MeanFilename=str(tmp_path / "mean.txt"),
        ScaleFilename=str(tmp_path / "scale.txt"),
    )
    assert find_file(params["MeanFilename"]) == str(tmp_path / "mean.txt")
    with pytest.raises(WaveformConfigError):
        _configure(params)


def test_missing_mean_file(tmp_path, monkeypatch):
    monkeypatch.delenv("FW_SEARCH_PATH", raising=False)
    params = dict(
        BASE,
        MeanFilename=str(tmp_path / "absent.txt"),
        ScaleFilename=str(tmp_path / "absent2.txt"),
    )
    with pytest.raises(FileNotFoundError):
        _configure(params)


def test_find_file_uses_search_path(tmp_path, monkeypatch):
    (tmp_path / "model.pb").write_bytes(b"x")
    monkeypatch.setenv("FW_SEARCH_PATH", str(tmp_path))
    found = find_file("model.pb")
    assert found == str(tmp_path / "model.pb")


def test_find_file_falls_back_to_given_path(tmp_path, monkeypatch):
    target = tmp_path / "direct.txt"
    target.write_text("1")
    monkeypatch.delenv("FW_SEARCH_PATH", raising=False)
    assert find_file(str(target)) == str(target)


def test_find_file_missing(tmp_path, monkeypatch):
    monkeypatch.setenv("FW_SEARCH_PATH", str(tmp_path))
    with pytest.raises(FileNotFoundError):
        find_file("nowhere.bin")


def test_window_larger_than_waveform_rejected():
    with pytest.raises(WaveformConfigError):
        _configure({"WaveformSize": 3, "ScanWindowSize": 5, "StrideLength": 1})


def test_zero_stride_rejected():
    with pytest.raises(WaveformConfigError):
        _configure({"WaveformSize": 10, "ScanWindowSize": 5, "StrideLength": 0})