import os

import cv2
import numpy as np
import pytest
from conftest import make_photo

from booth.services.filters import FilterKind, PhotoFilterService, apply_filter_array


def sample(bgr=(40, 120, 200), size=(16, 16)):
    img = np.zeros((size[1], size[0], 3), dtype=np.uint8)
    img[:] = bgr
    return img


@pytest.mark.parametrize(
    "raw, kind",
    [
        ("BlackAndWhite", FilterKind.BLACK_AND_WHITE),
        ("sepia", FilterKind.SEPIA),
        ("HighContrast", FilterKind.HIGH_CONTRAST),
        ("high-contrast", FilterKind.HIGH_CONTRAST),
        ("", FilterKind.NONE),
        (None, FilterKind.NONE),
        ("sparkles", FilterKind.NONE),
        (FilterKind.VIVID, FilterKind.VIVID),
    ],
)
def test_parse(raw, kind):
    assert FilterKind.parse(raw) is kind


def test_black_and_white_uses_luma_weights():
    out = apply_filter_array(sample(), FilterKind.BLACK_AND_WHITE)
    b, g, r = (int(v) for v in out[0, 0])
    assert b == g == r
    assert r == pytest.approx(0.114 * 40 + 0.587 * 120 + 0.299 * 200, abs=1)


def test_sepia_warms_white():
    out = apply_filter_array(sample((255, 255, 255)), FilterKind.SEPIA)
    b, g, r = (int(v) for v in out[0, 0])
    assert r == 255 and g == 255
    assert b == pytest.approx(0.937 * 255, abs=1)


def test_zero_intensity_keeps_pixels():
    src = sample()
    for kind in FilterKind:
        assert np.array_equal(apply_filter_array(src, kind, 0.0), src)


def test_half_intensity_blends():
    src = sample((255, 255, 255))
    full = apply_filter_array(src, FilterKind.SEPIA, 1.0).astype(int)
    half = apply_filter_array(src, FilterKind.SEPIA, 0.5).astype(int)
    assert abs(half[0, 0, 0] - (255 + full[0, 0, 0]) / 2) <= 1


@pytest.mark.parametrize("kind", [k for k in FilterKind if k is not FilterKind.NONE])
def test_every_filter_keeps_shape_and_dtype(kind):
    src = sample(size=(64, 48))
    out = apply_filter_array(src, kind, 1.0)
    assert out.shape == src.shape
    assert out.dtype == np.uint8


def test_service_writes_filtered_copy(tmp_path):
    src = make_photo(tmp_path / "IMG_1.jpg", (255, 255, 255), (32, 32))
    out = PhotoFilterService().apply(src, FilterKind.BLACK_AND_WHITE, 1.0)
    assert out == str(tmp_path / "IMG_1_filtered.jpg")
    assert os.path.isfile(out)
    assert cv2.imread(src) is not None


def test_service_none_and_failures_return_original(tmp_path):
    svc = PhotoFilterService()
    src = make_photo(tmp_path / "IMG_2.jpg")
    assert svc.apply(src, FilterKind.NONE) == src
    missing = str(tmp_path / "missing.jpg")
    assert svc.apply(missing, FilterKind.SEPIA) == missing
    assert not os.path.exists(str(tmp_path / "missing_filtered.jpg"))


def test_service_returns_original_when_effect_raises(tmp_path, monkeypatch):
    src = make_photo(tmp_path / "IMG_2.jpg", (10, 20, 30), (32, 32))

    def broken(*_args, **_kwargs):
        raise ValueError("operands could not be broadcast together")

    monkeypatch.setattr("booth.services.filters.apply_filter_array", broken)
    assert PhotoFilterService().apply(src, FilterKind.VIVID, 1.0) == src
    assert not os.path.exists(tmp_path / "IMG_2_filtered.jpg")
