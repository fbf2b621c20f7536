"""
Short display labels for instrument ids.

Instrument ids look like BASE-QUOTE or BASE-QUOTE-SWAP. The label is the BASE
segment; when two ids share a base, perpetuals get a "-S" suffix. If labels
still collide the result is empty and callers render full ids instead.
"""

from typing import Dict, Sequence

SEPARATOR = "-"
SWAP_SUFFIX = "-SWAP"
SWAP_LABEL_SUFFIX = "-S"


def base_segment(inst_id: str) -> str:
    """'BTC-USDT-SWAP' -> 'BTC'."""
    return inst_id.split(SEPARATOR, 1)[0]


def _is_unique(labels: Dict[str, str]) -> bool:
    values = list(labels.values())
    return len(set(values)) == len(values)


def build_abbreviations(symbols: Sequence[str]) -> Dict[str, str]:
    """Map each instrument id to a collision-free label, or return {}.

    >>> build_abbreviations(["BTC-USDT-SWAP", "BTC-USDT"])
    {'BTC-USDT-SWAP': 'BTC-S', 'BTC-USDT': 'BTC'}
    """
    first = {inst_id: base_segment(inst_id) for inst_id in symbols}
    if _is_unique(first):
        return first

    second = {}
    for inst_id, label in first.items():
        conflict = any(
            other_id != inst_id and other_label == label
            for other_id, other_label in first.items()
        )
        if conflict and inst_id.endswith(SWAP_SUFFIX):
            second[inst_id] = label + SWAP_LABEL_SUFFIX
        else:
            second[inst_id] = label

    if _is_unique(second):
        return second
    return {}
