"""画像から主要色を抽出する（ファビコンからボタン色を提案する用途）."""

from __future__ import annotations

import io
import logging
from collections import Counter

import requests
from PIL import Image, UnidentifiedImageError

from voteboard.config import REQUEST_TIMEOUT

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 64
BUCKET = 16


def _bucket(value: int) -> int:
    # 近い色をまとめる. 255 付近は 256 になるので丸める
    return min(round(value / BUCKET) * BUCKET, 255)


def dominant_color(image: Image.Image) -> str | None:
    """透明・白っぽい・黒っぽい・彩度の低いピクセルを除いた最頻色（#rrggbb）."""
    sample = image.convert("RGBA").resize((SAMPLE_SIZE, SAMPLE_SIZE))
    counts: Counter[tuple[int, int, int]] = Counter()

    for r, g, b, a in sample.getdata():
        if a < 128:
            continue
        if r > 240 and g > 240 and b > 240:
            continue
        if r < 15 and g < 15 and b < 15:
            continue
        high, low = max(r, g, b), min(r, g, b)
        saturation = 0 if high == 0 else (high - low) / high
        if saturation < 0.2:
            continue
        counts[(_bucket(r), _bucket(g), _bucket(b))] += 1

    if not counts:
        return None
    (r, g, b), _ = counts.most_common(1)[0]
    return f"#{r:02x}{g:02x}{b:02x}"


def extract_dominant_color(image_url: str) -> str | None:
    """URL の画像を取得して主要色を返す. 取得・デコード失敗時は None."""
    try:
        resp = requests.get(image_url, timeout=REQUEST_TIMEOUT)
        resp.raise_for_status()
    except requests.RequestException as e:
        logger.warning("画像取得失敗: url=%s, error=%s", image_url, e)
        return None

    try:
        with Image.open(io.BytesIO(resp.content)) as image:
            return dominant_color(image)
    except (UnidentifiedImageError, OSError) as e:
        logger.warning("画像デコード失敗: url=%s, error=%s", image_url, e)
        return None
