"""
Deterministic bucketing.

A key is hashed with SHA-256 and the first 8 bytes are read as an unsigned
integer and normalised to [0.0, 1.0). The same key always lands in the same
bucket, and distinct keys spread uniformly.

Two independent buckets are drawn per assignment decision, one for traffic
inclusion and one for the variant pick, by hashing different keys.
"""

import hashlib

_MAX = 2**64


def bucket(key: str) -> float:
    digest = hashlib.sha256(key.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") / _MAX


def inclusion_key(user_id: str, experiment_id: str) -> str:
    return f"{user_id}:{experiment_id}"


def variant_key(user_id: str, experiment_id: str) -> str:
    return f"{user_id}:{experiment_id}:variant"
