# repertoire_trainer/core/lines.py
import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from ..config import DEFAULT_LEARNER_COLOR
from ..database.models import CustomOpening, Opening, Variation

logger = logging.getLogger(__name__)

WHITE = "white"
BLACK = "black"
COLORS = (WHITE, BLACK)


@dataclass(frozen=True)
class OpeningLine:
    """目錄開局的主線，或加上一個變例。"""
    opening_id: int
    variation_id: Optional[int] = None
    learner_color: str = DEFAULT_LEARNER_COLOR

    kind = "opening"

    @property
    def key(self) -> str:
        if self.variation_id is None:
            return f"opening:{self.opening_id}"
        return f"opening:{self.opening_id}/variation:{self.variation_id}"


@dataclass(frozen=True)
class CustomLine:
    custom_opening_id: int

    kind = "custom"

    @property
    def key(self) -> str:
        return f"custom:{self.custom_opening_id}"


LineRef = Union[OpeningLine, CustomLine]


@dataclass(frozen=True)
class ResolvedLine:
    ref: LineRef
    moves: List[str]
    display_name: str
    learner_color: str


def normalize_color(color: Optional[str]) -> str:
    color = (color or DEFAULT_LEARNER_COLOR).lower()
    if color not in COLORS:
        raise ValueError(f"未知的執棋顏色: {color}")
    return color


def clamp_branch_ply(branch_at_ply: int, main_length: int, variation_name: str = "") -> int:
    if branch_at_ply is None or branch_at_ply < 0:
        clamped = 0
    elif branch_at_ply > main_length:
        clamped = main_length
    else:
        return branch_at_ply
    logger.warning(
        f"變例 '{variation_name}' 的分支點 {branch_at_ply} 超出主線範圍 0..{main_length}，已調整為 {clamped}。"
    )
    return clamped


def resolve_opening_line(opening: Opening, variation: Optional[Variation] = None,
                         learner_color: str = DEFAULT_LEARNER_COLOR) -> ResolvedLine:
    """主線，或主線前 branch_at_ply 步接上變例走法。"""
    main_line = list(opening.moves or [])
    if variation is None:
        return ResolvedLine(
            ref=OpeningLine(opening.id, None, normalize_color(learner_color)),
            moves=main_line,
            display_name=opening.name,
            learner_color=normalize_color(learner_color),
        )

    branch = clamp_branch_ply(variation.branch_at_ply, len(main_line), variation.name)
    return ResolvedLine(
        ref=OpeningLine(opening.id, variation.id, normalize_color(learner_color)),
        moves=main_line[:branch] + list(variation.moves or []),
        display_name=f"{opening.name}: {variation.name}",
        learner_color=normalize_color(learner_color),
    )


def resolve_custom_line(custom_opening: CustomOpening) -> ResolvedLine:
    return ResolvedLine(
        ref=CustomLine(custom_opening.id),
        moves=list(custom_opening.moves or []),
        display_name=custom_opening.name,
        learner_color=normalize_color(custom_opening.color),
    )
