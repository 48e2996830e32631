"""Tests for image decoding and model input tensors."""

from __future__ import annotations

import cv2
import numpy as np
import pytest

from landmarkx.ml.preprocessing import decode_image, to_detector_tensor, to_landmark_tensor


class TestDecodeImage:
    def test_decodes_png_as_rgb(self) -> None:
        bgr = np.zeros((4, 6, 3), dtype=np.uint8)
        bgr[..., 0] = 255  # blue in OpenCV channel order
        ok, encoded = cv2.imencode(".png", bgr)
        assert ok

        rgb = decode_image(encoded.tobytes(), max_pixels=100)

        assert rgb.shape == (4, 6, 3)
        assert rgb.dtype == np.uint8
        assert rgb[0, 0].tolist() == [0, 0, 255]

    def test_rejects_garbage(self) -> None:
        with pytest.raises(ValueError, match="decode"):
            decode_image(b"not an image", max_pixels=100)

    def test_rejects_empty_payload(self) -> None:
        with pytest.raises(ValueError, match="Empty"):
            decode_image(b"", max_pixels=100)

    def test_rejects_too_many_pixels(self) -> None:
        ok, encoded = cv2.imencode(".png", np.zeros((20, 20, 3), dtype=np.uint8))
        assert ok
        with pytest.raises(ValueError, match="limit"):
            decode_image(encoded.tobytes(), max_pixels=399)


class TestTensors:
    def test_detector_tensor_normalization(self) -> None:
        image = np.zeros((2, 3, 3), dtype=np.uint8)
        image[0, 0] = (0, 128, 255)

        tensor = to_detector_tensor(image)

        assert tensor.shape == (1, 3, 2, 3)
        assert tensor.dtype == np.float32
        np.testing.assert_allclose(tensor[0, :, 0, 0], [-127.5 / 128, 0.5 / 128, 127.5 / 128])

    def test_landmark_tensor_keeps_pixel_values(self) -> None:
        image = np.zeros((2, 2, 3), dtype=np.uint8)
        image[1, 0] = (10, 20, 30)

        tensor = to_landmark_tensor(image)

        assert tensor.shape == (1, 3, 2, 2)
        assert tensor[0, :, 1, 0].tolist() == [10.0, 20.0, 30.0]
