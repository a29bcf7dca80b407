"""
Page clean-up before Tesseract reads a rendered roll page.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import cv2
import numpy as np

# Rotations smaller than this are rendering noise, not scan skew
MIN_SKEW_DEG = 0.2
MAX_SKEW_DEG = 15.0


def load_image(path: Path) -> Optional[np.ndarray]:
    """
    Read a page image as grayscale.

    Goes through ``np.fromfile`` + ``cv2.imdecode`` so non-ASCII paths
    work. Returns None for missing, empty or undecodable files.
    """
    try:
        data = np.fromfile(str(path), dtype=np.uint8)
    except OSError:
        return None
    if data.size == 0:
        return None
    return cv2.imdecode(data, cv2.IMREAD_GRAYSCALE)


def estimate_skew(gray: np.ndarray) -> float:
    """
    Skew angle in degrees from the minimum-area rectangle around the ink.

    Returns 0.0 for blank pages and for angles outside ``MAX_SKEW_DEG``
    (those are rotated scans, not skew).
    """
    _, ink = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY_INV + cv2.THRESH_OTSU)
    coords = cv2.findNonZero(ink)
    if coords is None or len(coords) < 100:
        return 0.0

    angle = cv2.minAreaRect(coords)[-1]
    # minAreaRect reports (-90, 0] or [0, 90) depending on the OpenCV version
    if angle > 45:
        angle -= 90
    elif angle < -45:
        angle += 90
    return float(angle) if abs(angle) <= MAX_SKEW_DEG else 0.0


def rotate(gray: np.ndarray, angle: float) -> np.ndarray:
    if abs(angle) < MIN_SKEW_DEG:
        return gray
    height, width = gray.shape[:2]
    matrix = cv2.getRotationMatrix2D((width / 2, height / 2), angle, 1.0)
    return cv2.warpAffine(gray, matrix, (width, height), flags=cv2.INTER_CUBIC, borderMode=cv2.BORDER_REPLICATE)


def preprocess_for_ocr(image: np.ndarray, scale: float = 1.5) -> np.ndarray:
    """
    Grayscale, deskew, upscale and binarize a page.

    The upscale matters for Devanagari: at 150 dpi the matras are only a
    few pixels tall.

    Args:
        image: Page as rendered (grayscale or BGR)
        scale: Upscale factor

    Returns:
        Black-on-white uint8 image
    """
    gray = image if image.ndim == 2 else cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    gray = rotate(gray, estimate_skew(gray))
    if scale != 1.0:
        gray = cv2.resize(gray, None, fx=scale, fy=scale, interpolation=cv2.INTER_CUBIC)
    gray = cv2.medianBlur(gray, 3)
    _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    return binary
