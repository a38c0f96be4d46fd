# watchlist.py - Monitored addresses + in/out classification
# - Addresses are compared lowercase (same convention as the ledger rows)
# - Default list: Binance hot wallets on Polygon

import re
from typing import FrozenSet, Iterable, Tuple

from ledger import RawTransfer

DEFAULT_WATCHLIST = (
    "0xF977814e90dA44bFA03b6295A0616a897441aceC",
    "0xe7804c37c13166fF0b37F5aE0BB07A3aEbb6e245",
    "0x505e71695E9bc45943c58adEC1650577BcA68fD9",
    "0x290275e3db66394C52272398959845170E4DCb88",
    "0xD5C08681719445A5Fdce2Bda98b341A49050d821",
    "0x082489A616aB4D46d1947eE3F912e080815b08DA",
)

_ADDRESS_RE = re.compile(r"0x[0-9a-f]{40}")


def normalize_address(addr: str) -> str:
    if not isinstance(addr, str):
        raise ValueError(f"address must be a string, got: {type(addr)}")
    addr = addr.strip().lower()
    if not _ADDRESS_RE.fullmatch(addr):
        raise ValueError(f"invalid address format: {addr}")
    return addr


def load_watchlist(addresses: Iterable[str]) -> FrozenSet[str]:
    return frozenset(normalize_address(a) for a in addresses)


def classify(transfer: RawTransfer, watchlist: FrozenSet[str]) -> Tuple[bool, bool]:
    """(is_in, is_out): recipient on the list means inbound, sender means outbound."""
    is_in = transfer.to_address.lower() in watchlist
    is_out = transfer.from_address.lower() in watchlist
    return is_in, is_out
