"""Pending card effects awaiting a counter decision.

A match holds either ``None`` or one of the variants below. Only counterable
effects are ever stored; an effect with no possible counter is resolved in
the same step that created it.
"""
from dataclasses import dataclass
from typing import ClassVar, Union

from .cards import BLOCK_RANK, DRAW_RANK


@dataclass(frozen=True)
class Block:
    kind: ClassVar[str] = 'block'
    counter_rank: ClassVar[int] = BLOCK_RANK

    source_id: str
    target_id: str
    counter_deadline: float


@dataclass(frozen=True)
class ForcedDraw:
    kind: ClassVar[str] = 'forced_draw'
    counter_rank: ClassVar[int] = DRAW_RANK

    source_id: str
    target_id: str
    draw_count: int
    counter_deadline: float


PendingEffect = Union[Block, ForcedDraw]


def describe(effect: PendingEffect):
    data = {
        'kind': effect.kind,
        'source_id': effect.source_id,
        'target_id': effect.target_id,
        'counterable': True,
        'counter_deadline': effect.counter_deadline,
        'draw_count': None,
    }
    if isinstance(effect, ForcedDraw):
        data['draw_count'] = effect.draw_count
    return data
