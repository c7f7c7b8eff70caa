from __future__ import annotations

import cv2
import numpy as np
import pytest

from fashion_studio.ai.image_utils import decode_image_bytes, validate_garment_photo, validate_model_photo
from fashion_studio.core.errors import ValidationFailed


def _garment_on_white(size: int = 600) -> np.ndarray:
    img = np.full((size, size, 3), 255, dtype=np.uint8)
    q = size // 4
    cv2.rectangle(img, (q, q), (size - q, size - q), (20, 20, 20), thickness=-1)
    return img


def _model_portrait() -> np.ndarray:
    img = np.full((768, 512, 3), 200, dtype=np.uint8)
    cv2.rectangle(img, (156, 150), (356, 700), (0, 0, 0), thickness=-1)
    return img


def _png(img: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".png", img)
    assert ok
    return buf.tobytes()


def test_clean_garment_photo_passes():
    report = validate_garment_photo(_garment_on_white())
    assert report["ok"] is True
    assert report["reasons"] == []
    assert report["signals"]["resolution"] == [600, 600]
    assert report["signals"]["plain_bg_ratio"] > 0.5


def test_dark_tiny_garment_photo_fails():
    report = validate_garment_photo(np.full((100, 100, 3), 40, dtype=np.uint8))
    assert report["ok"] is False
    assert {"LOW_RESOLUTION", "TOO_BLURRY", "LOW_LIGHT", "BUSY_BACKGROUND"} <= set(report["reasons"])
    assert report["score"] < 0.55
    assert len(report["tips"]) <= 4


def test_model_photo_checks():
    good = validate_model_photo(_model_portrait())
    assert good["ok"] is True
    assert good["signals"]["aspect_ratio"] == 1.5

    bad = validate_model_photo(np.zeros((400, 800, 3), dtype=np.uint8))
    assert bad["ok"] is False
    assert {"LOW_RESOLUTION", "LANDSCAPE_ORIENTATION", "LOW_LIGHT"} <= set(bad["reasons"])

    bright = validate_model_photo(np.full((768, 512, 3), 250, dtype=np.uint8))
    assert "OVEREXPOSED" in bright["reasons"]


def test_decode_rejects_garbage():
    with pytest.raises(ValidationFailed) as exc:
        decode_image_bytes(b"definitely not an image")
    assert exc.value.error_code == "INVALID_IMAGE"


def test_upload_garment_stores_file_and_reports(client, user, storage):
    _, headers = user
    r = client.post(
        "/uploads/garment",
        files={"file": ("garment.png", _png(_garment_on_white()), "image/png")},
        headers=headers,
    )
    assert r.status_code == 201, r.text
    data = r.json()
    assert data["bucket"] == "garment-images"
    assert data["url"].startswith("http://testserver/storage/garment-images/")
    assert data["url"].endswith(".png")
    assert data["report"]["ok"] is True
    assert (storage.root / data["path"]).exists()

    served = client.get(f"/storage/{data['path']}")
    assert served.status_code == 200


def test_upload_model_goes_to_model_bucket(client, user):
    _, headers = user
    r = client.post(
        "/uploads/model",
        files={"file": ("me.png", _png(_model_portrait()), "image/png")},
        headers=headers,
    )
    assert r.status_code == 201
    assert r.json()["bucket"] == "model-images"


def test_upload_rejections(client, user, monkeypatch):
    _, headers = user

    r = client.post("/uploads/garment", files={"file": ("a.txt", b"hello", "text/plain")}, headers=headers)
    assert r.status_code == 415
    assert r.json()["detail"]["error_code"] == "INVALID_FILE_TYPE"

    r = client.post("/uploads/garment", files={"file": ("a.png", b"", "image/png")}, headers=headers)
    assert r.status_code == 400
    assert r.json()["detail"]["error_code"] == "EMPTY_FILE"

    r = client.post("/uploads/garment", files={"file": ("a.png", b"not a png", "image/png")}, headers=headers)
    assert r.status_code == 422
    assert r.json()["detail"]["error_code"] == "INVALID_IMAGE"

    monkeypatch.setattr("fashion_studio.api.routes.uploads.MAX_UPLOAD_BYTES", 16)
    r = client.post("/uploads/garment", files={"file": ("a.png", b"x" * 17, "image/png")}, headers=headers)
    assert r.status_code == 413
    assert r.json()["detail"]["error_code"] == "FILE_TOO_LARGE"


def test_validate_endpoints_do_not_store(client, user, storage):
    _, headers = user
    before = set((storage.root / "garment-images").iterdir())

    r = client.post(
        "/uploads/garment/validate",
        files={"file": ("g.png", _png(_garment_on_white()), "image/png")},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert set((storage.root / "garment-images").iterdir()) == before

    r = client.post(
        "/uploads/model/validate",
        files={"file": ("m.png", _png(np.zeros((400, 800, 3), dtype=np.uint8)), "image/png")},
        headers=headers,
    )
    assert r.json()["ok"] is False


def test_avatar_upload_sets_profile_url(client, user):
    _, headers = user
    r = client.post(
        "/profile/avatar",
        files={"file": ("me.png", _png(_model_portrait()), "image/png")},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    assert r.json()["avatar_url"].startswith("http://testserver/storage/avatars/")
    assert client.get("/profile", headers=headers).json()["avatar_url"] == r.json()["avatar_url"]


def test_storage_rejects_unknown_bucket(storage):
    from fashion_studio.core.errors import AppError

    with pytest.raises(AppError) as exc:
        storage.save("secrets", b"x")
    assert exc.value.error_code == "UNKNOWN_BUCKET"
