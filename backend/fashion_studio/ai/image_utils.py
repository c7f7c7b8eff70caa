from __future__ import annotations
from typing import Any, Dict, List
import numpy as np
import cv2

from fashion_studio.core.errors import ValidationFailed


def decode_image_bytes(raw: bytes) -> np.ndarray:
    arr = np.frombuffer(raw, dtype=np.uint8)
    bgr = cv2.imdecode(arr, cv2.IMREAD_COLOR)
    if bgr is None:
        raise ValidationFailed("INVALID_IMAGE", "Could not decode the uploaded image.")
    return bgr


def _laplacian_variance(gray: np.ndarray) -> float:
    return float(cv2.Laplacian(gray, cv2.CV_64F).var())


def _estimate_plain_bg_ratio(bgr: np.ndarray, thr: int = 235) -> float:
    hsv = cv2.cvtColor(bgr, cv2.COLOR_BGR2HSV)
    v = hsv[:, :, 2]
    s = hsv[:, :, 1]
    mask = (v >= thr) & (s <= 35)
    return float(np.mean(mask))


def _edge_density(gray: np.ndarray) -> float:
    edges = cv2.Canny(gray, 80, 180)
    return float(np.mean(edges > 0))


def _report(score: float, pass_mark: float, reasons: List[str], tips: List[str], signals: Dict[str, Any]) -> Dict[str, Any]:
    score = float(np.clip(score, 0.0, 1.0))
    return {
        "ok": score >= pass_mark,
        "score": round(score, 3),
        "reasons": reasons,
        "tips": tips[:4],
        "signals": signals,
    }


def validate_garment_photo(bgr: np.ndarray) -> Dict[str, Any]:
    h, w = bgr.shape[:2]
    reasons: List[str] = []
    tips: List[str] = []

    if min(h, w) < 480:
        reasons.append("LOW_RESOLUTION")
        tips.append("Move closer to the garment or use a higher resolution.")

    gray = cv2.cvtColor(bgr, cv2.COLOR_BGR2GRAY)

    sharpness = _laplacian_variance(gray)
    if sharpness < 70:
        reasons.append("TOO_BLURRY")
        tips.append("Image is blurry. Steady the camera and add light.")

    brightness = float(np.mean(gray))
    if brightness < 70:
        reasons.append("LOW_LIGHT")
        tips.append("Too dark. Shoot in a brighter place.")

    plain_ratio = _estimate_plain_bg_ratio(bgr, thr=235)
    if plain_ratio < 0.25:
        reasons.append("BUSY_BACKGROUND")
        tips.append("Busy background. Prefer a plain, contrasting backdrop.")

    ed = _edge_density(gray)
    if ed > 0.18:
        reasons.append("TOO_MUCH_TEXTURE")
        tips.append("Background is heavily textured. Use a simple backdrop.")

    score = 1.0
    if "LOW_RESOLUTION" in reasons: score -= 0.18
    if "TOO_BLURRY" in reasons: score -= 0.25
    if "LOW_LIGHT" in reasons: score -= 0.18
    if "BUSY_BACKGROUND" in reasons: score -= 0.22
    if "TOO_MUCH_TEXTURE" in reasons: score -= 0.12

    return _report(score, 0.55, reasons, tips, {
        "resolution": [int(w), int(h)],
        "sharpness": round(float(sharpness), 2),
        "brightness": round(float(brightness), 2),
        "plain_bg_ratio": round(float(plain_ratio), 3),
        "edge_density": round(float(ed), 3),
    })


def validate_model_photo(bgr: np.ndarray) -> Dict[str, Any]:
    """
    Checks a model (person) photo before it is sent for generation.
    The provider works best with portrait, well lit, sharp photos of at least 512px.
    """
    h, w = bgr.shape[:2]
    reasons: List[str] = []
    tips: List[str] = []

    if min(h, w) < 512:
        reasons.append("LOW_RESOLUTION")
        tips.append("Use a photo that is at least 512px on its shortest side.")

    aspect = float(h) / float(w) if w else 0.0
    if aspect < 1.0:
        reasons.append("LANDSCAPE_ORIENTATION")
        tips.append("Use a portrait photo showing the full upper body or full body.")

    gray = cv2.cvtColor(bgr, cv2.COLOR_BGR2GRAY)

    sharpness = _laplacian_variance(gray)
    if sharpness < 50:
        reasons.append("TOO_BLURRY")
        tips.append("Image is blurry. Steady the camera and add light.")

    brightness = float(np.mean(gray))
    if brightness < 60:
        reasons.append("LOW_LIGHT")
        tips.append("Too dark. Shoot in a brighter place.")
    elif brightness > 235:
        reasons.append("OVEREXPOSED")
        tips.append("Image is overexposed. Reduce direct light.")

    score = 1.0
    if "LOW_RESOLUTION" in reasons: score -= 0.25
    if "LANDSCAPE_ORIENTATION" in reasons: score -= 0.15
    if "TOO_BLURRY" in reasons: score -= 0.25
    if "LOW_LIGHT" in reasons: score -= 0.2
    if "OVEREXPOSED" in reasons: score -= 0.2

    return _report(score, 0.5, reasons, tips, {
        "resolution": [int(w), int(h)],
        "aspect_ratio": round(aspect, 3),
        "sharpness": round(float(sharpness), 2),
        "brightness": round(float(brightness), 2),
    })
