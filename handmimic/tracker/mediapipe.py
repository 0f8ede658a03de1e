"""MediaPipe HandLandmarker as a source of :class:`~handmimic.landmarks.HandFrame`."""

import logging
import urllib.request
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import cv2
import mediapipe as mp
import numpy as np
from mediapipe.tasks import python
from mediapipe.tasks.python import vision

from ..landmarks import FINGER_LANDMARKS, HANDEDNESS_VALUES, HandFrame, HandLandmark

logger = logging.getLogger(__name__)

HAND_LANDMARKER_MODEL_URL = "https://storage.googleapis.com/mediapipe-models/hand_landmarker/hand_landmarker/float16/latest/hand_landmarker.task"

# Bones drawn by visualize(): wrist to each finger base, then along every finger, then across the palm
HAND_CONNECTIONS: tuple[tuple[int, int], ...] = (
    *((int(HandLandmark.WRIST), int(chain[0])) for chain in FINGER_LANDMARKS.values()),
    *((int(a), int(b)) for chain in FINGER_LANDMARKS.values() for a, b in zip(chain, chain[1:])),
    (int(HandLandmark.INDEX_FINGER_MCP), int(HandLandmark.MIDDLE_FINGER_MCP)),
    (int(HandLandmark.MIDDLE_FINGER_MCP), int(HandLandmark.RING_FINGER_MCP)),
    (int(HandLandmark.RING_FINGER_MCP), int(HandLandmark.PINKY_MCP)),
)


def hand_frames_from_result(result: Any, timestamp: float = 0.0) -> list[HandFrame]:
    """Convert a HandLandmarker result into hand frames.

    Uses the normalized image landmarks (x, y in [0, 1], z relative depth).
    Hands with an unknown handedness label or a wrong landmark count are dropped.

    Args:
        result: ``HandLandmarkerResult`` (or any object with ``hand_landmarks``
            and ``handedness`` sequences)
        timestamp: Frame time in seconds
    """
    frames: list[HandFrame] = []
    if not result.hand_landmarks:
        return frames

    for hand_landmarks, handedness_list in zip(result.hand_landmarks, result.handedness):
        if not handedness_list:
            continue
        category = handedness_list[0]
        label = category.category_name
        if label not in HANDEDNESS_VALUES:
            logger.debug("Dropping hand with handedness %r", label)
            continue
        landmarks = np.array([[lm.x, lm.y, lm.z] for lm in hand_landmarks], dtype=float)
        frame = HandFrame(handedness=label, landmarks=landmarks, confidence=float(category.score), timestamp=timestamp)
        if not frame.is_valid():
            logger.debug("Dropping %s hand with %d landmarks", label, len(landmarks))
            continue
        frames.append(frame)

    return frames


class MediaPipeTracker:
    """MediaPipe-based hand tracker (video running mode)."""

    def __init__(
        self,
        model_path: str | None = None,
        max_num_hands: int = 2,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
    ) -> None:
        """Set up a VIDEO-mode HandLandmarker.

        Args:
            model_path: Path to hand_landmarker.task model file. If None, downloads default model.
            max_num_hands: Maximum number of hands to detect
            min_detection_confidence: Minimum confidence for detection
            min_tracking_confidence: Minimum confidence for tracking
        """
        if model_path is None:
            model_path = self._download_model()

        base_options = python.BaseOptions(model_asset_path=model_path)
        options = vision.HandLandmarkerOptions(
            base_options=base_options,
            running_mode=vision.RunningMode.VIDEO,
            num_hands=max_num_hands,
            min_hand_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence,
        )
        self.landmarker = vision.HandLandmarker.create_from_options(options)

    def _download_model(self) -> str:
        """Fetch hand_landmarker.task into the user cache on first use."""
        cache_dir = Path.home() / ".cache" / "handmimic"
        cache_dir.mkdir(parents=True, exist_ok=True)
        model_path = cache_dir / "hand_landmarker.task"

        if not model_path.exists():
            logger.info("Downloading hand landmarker model to %s", model_path)
            urllib.request.urlretrieve(HAND_LANDMARKER_MODEL_URL, model_path)

        return str(model_path)

    def detect_hands(self, bgr_image: np.ndarray, timestamp: float = 0.0) -> list[HandFrame]:
        """Detect hands in a BGR image.

        Args:
            bgr_image: HxWx3 image as delivered by OpenCV
            timestamp: Frame time in seconds; must increase between calls

        Returns:
            Zero to ``max_num_hands`` hand frames
        """
        image_rgb = cv2.cvtColor(bgr_image, cv2.COLOR_BGR2RGB)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=image_rgb)
        results = self.landmarker.detect_for_video(mp_image, int(timestamp * 1000))
        return hand_frames_from_result(results, timestamp)

    def visualize(self, image: np.ndarray, frames: Sequence[HandFrame]) -> np.ndarray:
        """Draw landmarks, bones and the handedness label of each frame onto a copy of ``image``."""
        annotated_image = image.copy()
        h, w = image.shape[:2]

        for frame in frames:
            points = (np.asarray(frame.landmarks)[:, :2] * [w, h]).astype(int)

            for start_idx, end_idx in HAND_CONNECTIONS:
                cv2.line(annotated_image, tuple(points[start_idx]), tuple(points[end_idx]), (0, 255, 0), 2)

            for x, y in points:
                cv2.circle(annotated_image, (int(x), int(y)), 4, (0, 0, 255), -1)

            wrist = points[HandLandmark.WRIST]
            cv2.putText(
                annotated_image,
                f"{frame.handedness} ({frame.confidence:.2f})",
                (int(wrist[0]), int(wrist[1]) - 10),
                cv2.FONT_HERSHEY_SIMPLEX,
                0.5,
                (255, 255, 255),
                2,
            )

        return annotated_image

    def close(self) -> None:
        self.landmarker.close()

    def __del__(self) -> None:
        """Close the landmarker."""
        if hasattr(self, "landmarker"):
            self.landmarker.close()
