"""Table-driven CRC16-CCITT implementation."""
from __future__ import annotations

from functools import lru_cache

CRC16_POLY = 0x1021
CRC16_INIT = 0xFFFF


@lru_cache(maxsize=1)
def crc16_table() -> tuple[int, ...]:
    """Return the 256-entry lookup table for CRC16_POLY."""

    table = []
    for index in range(256):
        checksum = index << 8
        for _ in range(8):
            if checksum & 0x8000:
                checksum = (checksum << 1) ^ CRC16_POLY
            else:
                checksum <<= 1
            checksum &= 0xFFFF
        table.append(checksum)
    return tuple(table)


def crc16_ccitt(data: str) -> str:
    """Compute CRC16-CCITT (0x1021, init 0xFFFF) for EMV payload strings."""

    table = crc16_table()
    checksum = CRC16_INIT
    for byte in data.encode("utf-8"):
        checksum = ((checksum << 8) & 0xFFFF) ^ table[((checksum >> 8) ^ byte) & 0xFF]
    return f"{checksum:04X}"
