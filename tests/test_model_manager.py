"""Tests for the ONNX model manager."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from landmarkx.config import Settings
from landmarkx.ml.model_manager import MODEL_REGISTRY, SCRFD_VARIANTS, ModelTask, OnnxModelManager

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_settings(**overrides: object) -> Settings:
    defaults: dict[str, object] = {
        "device": "cpu",
        "accept_insightface_license": True,
        "models_dir": "/tmp/landmarkx_test_models",
        "model_repo": "example/landmarkx-models",
        "intra_op_threads": 0,
        "inter_op_threads": 1,
        "gpu_mem_limit": 2_147_483_648,
        "max_concurrent": 2,
    }
    defaults.update(overrides)
    return Settings(**defaults)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Model registry tests
# ---------------------------------------------------------------------------


class TestModelRegistry:
    def test_every_scrfd_variant_registered(self) -> None:
        for variant in SCRFD_VARIANTS:
            spec = MODEL_REGISTRY[f"scrfd_{variant}"]
            assert spec.task == ModelTask.FACE_DETECTION
            assert spec.filename == f"scrfd_{variant}.onnx"

    def test_landmark_model_registered(self) -> None:
        spec = MODEL_REGISTRY["2d106det"]
        assert spec.task == "face_landmarks"
        assert spec.filename == "2d106det.onnx"
        assert spec.has_keypoints is False

    def test_keypoint_support_follows_kps_suffix(self) -> None:
        assert MODEL_REGISTRY["scrfd_500m_kps"].has_keypoints is True
        assert MODEL_REGISTRY["scrfd_10g_kps"].has_keypoints is True
        assert MODEL_REGISTRY["scrfd_500m"].has_keypoints is False
        assert MODEL_REGISTRY["scrfd_34g"].has_keypoints is False

    def test_unknown_model_raises_keyerror(self) -> None:
        with pytest.raises(KeyError):
            MODEL_REGISTRY["nonexistent_model"]

    def test_registry_size(self) -> None:
        assert len(MODEL_REGISTRY) == len(SCRFD_VARIANTS) + 1


# ---------------------------------------------------------------------------
# OnnxModelManager tests
# ---------------------------------------------------------------------------


class TestOnnxModelManager:
    @patch("landmarkx.ml.model_manager.hf_hub_download")
    def test_ensure_downloaded_calls_hf_hub_download(self, mock_download: MagicMock, tmp_path: Path) -> None:
        mock_download.return_value = str(tmp_path / "2d106det.onnx")
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))

        path = mgr.ensure_downloaded("2d106det")

        mock_download.assert_called_once_with(
            repo_id="example/landmarkx-models",
            filename="2d106det.onnx",
            local_dir=str(tmp_path),
        )
        assert path == tmp_path / "2d106det.onnx"

    @patch("landmarkx.ml.model_manager.hf_hub_download")
    def test_local_file_skips_download(self, mock_download: MagicMock, tmp_path: Path) -> None:
        model_file = tmp_path / "scrfd_500m_kps.onnx"
        model_file.touch()
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))

        path = mgr.ensure_downloaded("scrfd_500m_kps")

        mock_download.assert_not_called()
        assert path == model_file

    @patch("landmarkx.ml.model_manager.hf_hub_download")
    def test_cached_path_skips_download(self, mock_download: MagicMock, tmp_path: Path) -> None:
        model_file = tmp_path / "elsewhere.onnx"
        model_file.touch()
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path / "models")))
        # Simulate a previous download by setting the cached path.
        mgr._model_paths["2d106det"] = model_file

        assert mgr.ensure_downloaded("2d106det") == model_file
        mock_download.assert_not_called()

    def test_missing_file_without_repo_raises(self, tmp_path: Path) -> None:
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path), model_repo=None))
        with pytest.raises(FileNotFoundError, match="LANDMARKX_MODEL_REPO"):
            mgr.ensure_downloaded("2d106det")

    def test_insightface_blocked_without_license(self, tmp_path: Path) -> None:
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path), accept_insightface_license=False))

        with pytest.raises(RuntimeError, match="LANDMARKX_ACCEPT_INSIGHTFACE_LICENSE"):
            mgr.ensure_downloaded("scrfd_500m_kps")

    @patch("landmarkx.ml.model_manager.InferenceSession")
    @patch("landmarkx.ml.model_manager.hf_hub_download")
    def test_get_session_creates_and_caches(
        self, mock_download: MagicMock, mock_session_cls: MagicMock, tmp_path: Path
    ) -> None:
        mock_download.return_value = str(tmp_path / "2d106det.onnx")
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))

        session1 = mgr.get_session("2d106det")
        session2 = mgr.get_session("2d106det")

        assert session1 is mock_session
        assert session2 is mock_session
        mock_session_cls.assert_called_once()

    @patch("landmarkx.ml.model_manager.InferenceSession")
    @patch("landmarkx.ml.model_manager.hf_hub_download")
    def test_get_loaded_models(self, mock_download: MagicMock, mock_session_cls: MagicMock, tmp_path: Path) -> None:
        mock_download.return_value = str(tmp_path / "scrfd_1g.onnx")
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))

        assert mgr.get_loaded_models() == []
        mgr.get_session("scrfd_1g")
        assert mgr.get_loaded_models() == ["scrfd_1g"]

    def test_provider_building_cpu(self) -> None:
        mgr = OnnxModelManager(_make_settings(device="cpu"))
        assert mgr._providers == ["CPUExecutionProvider"]

    def test_provider_building_cuda(self) -> None:
        mgr = OnnxModelManager(_make_settings(device="cuda"))
        assert len(mgr._providers) == 2
        provider_name, provider_opts = mgr._providers[0]  # type: ignore[misc]
        assert provider_name == "CUDAExecutionProvider"
        assert provider_opts["device_id"] == 0
        assert mgr._providers[1] == "CPUExecutionProvider"

    def test_provider_building_openvino(self) -> None:
        mgr = OnnxModelManager(_make_settings(device="openvino"))
        assert len(mgr._providers) == 2
        provider_name, _provider_opts = mgr._providers[0]  # type: ignore[misc]
        assert provider_name == "OpenVINOExecutionProvider"
        assert mgr._providers[1] == "CPUExecutionProvider"

    def test_session_options_use_thread_settings(self) -> None:
        mgr = OnnxModelManager(_make_settings(intra_op_threads=3, inter_op_threads=2))
        assert mgr._session_options.intra_op_num_threads == 3
        assert mgr._session_options.inter_op_num_threads == 2

    @patch("landmarkx.ml.model_manager.InferenceSession")
    @patch("landmarkx.ml.model_manager.hf_hub_download")
    def test_shutdown_clears_sessions(
        self, mock_download: MagicMock, mock_session_cls: MagicMock, tmp_path: Path
    ) -> None:
        mock_download.return_value = str(tmp_path / "2d106det.onnx")
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))
        mgr.get_session("2d106det")
        assert len(mgr.get_loaded_models()) == 1

        mgr.shutdown()
        assert mgr.get_loaded_models() == []

    def test_unknown_model_raises_keyerror(self) -> None:
        mgr = OnnxModelManager(_make_settings())
        with pytest.raises(KeyError, match="Unknown model"):
            mgr.ensure_downloaded("totally_fake_model")
