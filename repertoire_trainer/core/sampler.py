# repertoire_trainer/core/sampler.py
"""從候選局面中抽題。

堆疊（collection）模式採兩階段均勻抽樣：先在成員路線之間均勻選一條，
再在該路線的候選局面中均勻選一個。因此短路線和長路線被抽中的機率相同，
不是對所有候選局面的聯集均勻抽樣。
"""
import logging
import random
from typing import Callable, List, Optional, Sequence, TypeVar

from .position_generator import Candidate

logger = logging.getLogger(__name__)

M = TypeVar("M")


def sample_candidate(candidates: Sequence[Candidate],
                     rng: Optional[random.Random] = None) -> Optional[Candidate]:
    """均勻選一個候選局面；沒有候選時回傳 None（沒有可練習的局面）。"""
    if not candidates:
        return None
    rng = rng or random
    return rng.choice(list(candidates))


def sample_collection(members: Sequence[M],
                      build_candidates: Callable[[M], List[Candidate]],
                      rng: Optional[random.Random] = None):
    """先均勻選成員，再在該成員的候選局面中均勻選一個。

    回傳 (member, candidate)；堆疊為空時回傳 None，選中的成員沒有候選局面時
    回傳 (member, None)。
    """
    if not members:
        return None
    rng = rng or random
    member = rng.choice(list(members))
    candidates = build_candidates(member)
    if not candidates:
        logger.info(f"抽中的堆疊成員 {member!r} 沒有可練習的局面。")
    return member, sample_candidate(candidates, rng)
