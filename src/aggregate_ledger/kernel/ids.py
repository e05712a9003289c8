"""
Identifier generation

Event ids, aggregate ids and command ids are UUIDv7-shaped strings: the
first 48 bits carry a millisecond timestamp so ids sort roughly by
creation time, the rest is random.
"""

import secrets
import time


def generate_id() -> str:
    """
    Generate a time-ordered UUIDv7-like identifier

    Returns:
        36-character UUID string (e.g., "01908e9a-3b87-7000-8000-123456789abc")
    """
    timestamp_ms = int(time.time() * 1000) & 0xFFFFFFFFFFFF
    rand_a = secrets.randbits(12)
    rand_b = secrets.randbits(62)

    value = (timestamp_ms << 80) | (0x7 << 76) | (rand_a << 64) | (0b10 << 62) | rand_b
    hex_value = f"{value:032x}"
    return (
        f"{hex_value[0:8]}-{hex_value[8:12]}-{hex_value[12:16]}-"
        f"{hex_value[16:20]}-{hex_value[20:32]}"
    )
