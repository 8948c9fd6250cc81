"""Tests for EncoderCore module."""

from typing import Iterator, List
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from com_yachtie_consensus.encoder.EncoderCore import DEFAULT_ENCODER_MODEL, EncoderCore


class TestEncoderCore:
    """Test cases for EncoderCore with the static model patched out."""

    @pytest.fixture(autouse=True)
    def static_model(self) -> Iterator[MagicMock]:
        EncoderCore.reset()
        model = MagicMock()
        model.encode.side_effect = lambda texts: np.array([[float(len(text)), 1.0] for text in texts])
        with patch("com_yachtie_consensus.encoder.EncoderCore.StaticModel") as static_model_class:
            static_model_class.from_pretrained.return_value = model
            yield static_model_class
        EncoderCore.reset()

    def test_encode_single_text(self, static_model: MagicMock) -> None:
        embedding_2d = EncoderCore.encode("engine overhaul")
        embedding_1d = EncoderCore.encode_single("engine overhaul")

        assert embedding_2d.shape == (1, 2)
        assert embedding_1d.ndim == 1
        assert np.array_equal(embedding_2d[0], embedding_1d)

    def test_encode_multiple_texts(self) -> None:
        texts: List[str] = ["approve", "reject", "defer"]

        assert EncoderCore.encode(texts).shape == (3, 2)

    def test_model_loaded_once(self, static_model: MagicMock) -> None:
        EncoderCore.encode_single("a")
        EncoderCore.encode_single("b")

        static_model.from_pretrained.assert_called_once_with(DEFAULT_ENCODER_MODEL)

    def test_model_path_from_env(self, static_model: MagicMock, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("YACHTIE_ENCODER_MODEL", "/models/potion-local")

        EncoderCore.encode_single("a")

        static_model.from_pretrained.assert_called_once_with("/models/potion-local")

    def test_encode_single_rejects_non_string(self) -> None:
        with pytest.raises(ValueError):
            EncoderCore.encode_single(42)  # type: ignore[arg-type]

    def test_load_failure(self, static_model: MagicMock) -> None:
        static_model.from_pretrained.side_effect = OSError("no such model")

        with pytest.raises(RuntimeError, match="Could not initialize encoder model"):
            EncoderCore.encode("a")
