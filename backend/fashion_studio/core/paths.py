from __future__ import annotations

from fashion_studio.core.config import STORAGE_DIR

LOGS_DIR = STORAGE_DIR / "logs"

MODEL_BUCKET = "model-images"
GARMENT_BUCKET = "garment-images"
RESULTS_BUCKET = "generated-results"
AVATAR_BUCKET = "avatars"

BUCKETS = (MODEL_BUCKET, GARMENT_BUCKET, RESULTS_BUCKET, AVATAR_BUCKET)

for _bucket in BUCKETS:
    (STORAGE_DIR / _bucket).mkdir(parents=True, exist_ok=True)
LOGS_DIR.mkdir(parents=True, exist_ok=True)
