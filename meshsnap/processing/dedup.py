"""Content fingerprints for suppressing repeated geometry."""

from typing import Iterable, Optional

import numpy as np

from meshsnap.core.records import MeshRecord

# Values are multiplied by this before rounding, so float noise below
# roughly 1.5e-5 leaves the hash unchanged.
QUANTIZATION_SCALE = 65536
HASH_MULTIPLIER = 31
_MASK32 = 0xFFFFFFFF


def hash_array(values: np.ndarray) -> int:
    """32-bit rolling hash of a quantized array.

    Evaluates ``h = (h * 31 + q) mod 2**32`` seeded with the array length,
    where ``q`` is the value scaled by 65536, rounded half up and reduced
    mod 2**32. The recurrence is unrolled into a polynomial in 31 so it can
    be computed with wrapping uint64 arithmetic; the low 32 bits are exact.
    """
    values = np.asarray(values, dtype=np.float64).reshape(-1)
    n = len(values)

    with np.errstate(over="ignore", invalid="ignore"):
        quantized = np.floor(values * QUANTIZATION_SCALE + 0.5).astype(np.int64)
        quantized = np.mod(quantized, 1 << 32).astype(np.uint64)

        powers = np.full(n + 1, HASH_MULTIPLIER, dtype=np.uint64)
        powers[0] = 1
        powers = np.cumprod(powers, dtype=np.uint64)

        # value i is multiplied by 31 ** (n - 1 - i)
        folded = np.sum(quantized * powers[:n][::-1], dtype=np.uint64)
        seeded = np.uint64(n) * powers[n]
        return int((seeded + folded) & np.uint64(_MASK32))


def fingerprint(record: MeshRecord) -> int:
    """64-bit geometry key: position hash in the high word, index hash in the low word."""
    return (hash_array(record.positions) << 32) | hash_array(record.indices)


def format_fingerprint(key: int) -> str:
    return f"{key:016x}"


def parse_fingerprint(text: str) -> int:
    return int(text, 16)


class Deduplicator:
    """Remembers fingerprints of geometry already collected.

    Keys passed as ``skip`` are treated as seen from the start and are never
    exported. Each export session owns its own instance; the skip set itself
    is read-only configuration.
    """

    def __init__(self, skip: Optional[Iterable[int | str]] = None):
        self._skip = frozenset(
            parse_fingerprint(k) if isinstance(k, str) else int(k) for k in (skip or ())
        )
        self._seen: set[int] = set()

    @staticmethod
    def fingerprint(record: MeshRecord) -> int:
        return fingerprint(record)

    def seen(self, key: int) -> bool:
        return key in self._skip or key in self._seen

    def record(self, key: int) -> None:
        self._seen.add(key)

    def is_skipped(self, key: int) -> bool:
        """Whether the key belongs to the fixed always-skip set."""
        return key in self._skip

    def __len__(self) -> int:
        return len(self._seen)
