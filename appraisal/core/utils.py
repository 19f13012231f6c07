import hashlib
import math

from pydantic import BaseModel

def round_half_up(value: float) -> int:
    """Prices and scores round .5 upward (2.5 -> 3), not to even."""
    return int(math.floor(value + 0.5))

def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))

def format_nis(value: float) -> str:
    """₪2,730,000"""
    return f"₪{round_half_up(value):,}"

def fnv1a_32(text: str) -> int:
    """32-bit FNV-1a; stable seed from a string across processes."""
    h = 0x811C9DC5
    for byte in text.encode("utf-8"):
        h = ((h ^ byte) * 0x01000193) & 0xFFFFFFFF
    return h

def seeded_rand(seed: int, n: int = 1) -> list[float]:
    """
    Mulberry32-style draws in [0, 1). Same seed, same numbers, no generator
    state to carry around, which keeps the mock comparables reproducible.
    """
    out = []
    t = (seed + 0x6D2B79F5) & 0xFFFFFFFF
    for _ in range(n):
        t = (t ^ (t >> 15)) * (t | 1) & 0xFFFFFFFF
        t ^= t + ((t ^ (t >> 7)) * (t | 61) & 0xFFFFFFFF)
        out.append(((t ^ (t >> 14)) & 0xFFFFFFFF) / 4294967296.0)
    return out

def weak_etag(model: BaseModel) -> str:
    """Weak validator over the model's canonical JSON."""
    digest = hashlib.sha256(model.model_dump_json().encode("utf-8")).hexdigest()[:24]
    return f'W/"{digest}"'
