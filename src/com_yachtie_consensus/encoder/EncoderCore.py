"""
Core encoder module for text embeddings using model2vec.

Used by the semantic output comparator to decide whether two model answers
say the same thing. The static model is loaded once on first use and shared
across requests.
"""

import logging
import os
from typing import List, Optional, Union

import numpy as np
from model2vec import StaticModel

logger = logging.getLogger(__name__)

DEFAULT_ENCODER_MODEL = "minishlab/potion-base-8M"


class EncoderCore:
    """
    Singleton encoder for generating text embeddings.

    The model path or hub id comes from ``YACHTIE_ENCODER_MODEL`` and falls
    back to the potion-base-8M static model.
    """

    _model: Optional[StaticModel] = None

    @classmethod
    def _initialize(cls) -> StaticModel:
        if cls._model is None:
            model_path = os.environ.get("YACHTIE_ENCODER_MODEL", DEFAULT_ENCODER_MODEL)
            logger.info(f"Loading encoder model from: {model_path}")
            try:
                cls._model = StaticModel.from_pretrained(model_path)
            except Exception as e:
                logger.exception("Failed to load encoder model")
                raise RuntimeError(f"Could not initialize encoder model '{model_path}': {e}") from e
            logger.info("Encoder model loaded successfully")
        return cls._model

    @classmethod
    def encode(cls, text: Union[str, List[str]]) -> np.ndarray:
        """
        Encode text into embeddings.

        Returns:
            Array of shape (n_texts, embedding_dim); a single string gives one row.
        """
        model = cls._initialize()
        return model.encode([text] if isinstance(text, str) else text)

    @classmethod
    def encode_single(cls, text: str) -> np.ndarray:
        """Encode a single text into a 1D embedding vector."""
        if not isinstance(text, str):
            raise ValueError(f"Expected string, got {type(text)}")
        return cls.encode(text)[0]  # type: ignore[no-any-return]

    @classmethod
    def reset(cls) -> None:
        """Drop the cached model so the next call reloads it."""
        cls._model = None
        logger.info("Encoder reset - model will be reloaded on next use")
