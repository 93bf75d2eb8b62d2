import base64
import hashlib
import math
from typing import Dict, Iterable, List


class BloomFilter:
    """
    Probabilistic set membership for fast tracker lookups.

    Never returns a false negative: anything passed to add() is always
    reported by contains(). Positions come from double hashing
    (h1 + i * h2) mod size over two independent digests.
    """

    MAX_HASH_COUNT = 20

    def __init__(self, size: int = 10000, hash_count: int = 7):
        if size <= 0:
            raise ValueError("size must be positive")
        if hash_count <= 0:
            raise ValueError("hash_count must be positive")

        self.size = size
        self.hash_count = hash_count
        self.bit_array = bytearray((size + 7) // 8)
        self.item_count = 0

    @classmethod
    def create_optimal(cls, expected_items: int, false_positive_rate: float = 0.01) -> "BloomFilter":
        """
        Size a filter for an expected population.

        Args:
            expected_items: Number of items that will be added
            false_positive_rate: Target false positive probability (0 < p < 1)

        Returns:
            BloomFilter with size = ceil(-n*ln(p)/ln(2)^2) and
            hash_count = min(ceil((size/n)*ln 2), 20)
        """
        n = max(int(expected_items), 1)
        size = math.ceil(-n * math.log(false_positive_rate) / (math.log(2) ** 2))
        hash_count = math.ceil((size / n) * math.log(2))
        return cls(size, min(hash_count, cls.MAX_HASH_COUNT))

    def _get_hash_positions(self, item: str) -> List[int]:
        data = str(item).encode("utf-8")
        h1 = int.from_bytes(hashlib.md5(data).digest()[:8], "big")
        h2 = int.from_bytes(hashlib.sha1(data).digest()[:8], "big") | 1
        return [(h1 + i * h2) % self.size for i in range(self.hash_count)]

    def _set_bit(self, position: int) -> None:
        self.bit_array[position // 8] |= 1 << (position % 8)

    def _get_bit(self, position: int) -> bool:
        return (self.bit_array[position // 8] & (1 << (position % 8))) != 0

    def add(self, item: str) -> "BloomFilter":
        for position in self._get_hash_positions(item):
            self._set_bit(position)
        self.item_count += 1
        return self

    def add_all(self, items: Iterable[str]) -> "BloomFilter":
        for item in items:
            self.add(item)
        return self

    def contains(self, item: str) -> bool:
        return all(self._get_bit(p) for p in self._get_hash_positions(item))

    def __contains__(self, item: str) -> bool:
        return self.contains(item)

    def bits_set(self) -> int:
        return sum(bin(byte).count("1") for byte in self.bit_array)

    def false_positive_rate(self) -> float:
        """Estimated false positive probability: (bits_set / size) ** hash_count"""
        return (self.bits_set() / self.size) ** self.hash_count

    def clear(self) -> "BloomFilter":
        self.bit_array = bytearray((self.size + 7) // 8)
        self.item_count = 0
        return self

    def serialize(self) -> Dict:
        return {
            "size": self.size,
            "hash_count": self.hash_count,
            "item_count": self.item_count,
            "bit_array": base64.b64encode(bytes(self.bit_array)).decode("ascii"),
        }

    @classmethod
    def deserialize(cls, data: Dict) -> "BloomFilter":
        bloom = cls(data["size"], data["hash_count"])
        bits = base64.b64decode(data["bit_array"])
        if len(bits) != len(bloom.bit_array):
            raise ValueError("bit array length does not match filter size")
        bloom.bit_array = bytearray(bits)
        bloom.item_count = data.get("item_count", 0)
        return bloom
