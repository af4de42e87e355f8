"""
services/randomness.py

문제 출제 순서를 섞는 헬퍼.
난수 생성기를 주입할 수 있어 테스트에서 순서를 고정할 수 있다.
"""

import random
from typing import List, MutableSequence, Optional, Sequence, TypeVar

T = TypeVar("T")


# ── 셔플 ─────────────────────────────────────────────────────────────────────

def shuffle(items: MutableSequence[T], rng: Optional[random.Random] = None) -> MutableSequence[T]:
    """
    Fisher–Yates 방식으로 전체 길이를 제자리에서 섞는다.

    매 단계마다 아직 처리하지 않은 마지막 칸을, 그 칸 이하에서 균등하게 고른
    칸과 맞바꾸고 처리 범위를 하나 줄인다.

    Args:
        items: 섞을 리스트 (직접 변경됨).
        rng:   사용할 난수 생성기. 없으면 모듈 전역 ``random``.

    Returns:
        인자로 받은 ``items`` 그대로.
    """
    rand = rng or random
    i = len(items)
    while i > 1:
        j = rand.randrange(i)
        i -= 1
        items[i], items[j] = items[j], items[i]
    return items


def shuffled(items: Sequence[T], rng: Optional[random.Random] = None) -> List[T]:
    """섞인 사본을 반환. 입력은 바꾸지 않는다."""
    out = list(items)
    shuffle(out, rng)
    return out
