"""Per-viewer projections of a match.

Nothing here reveals the opponent's cards: the opponent is reduced to a
card count, and pending effects are rewritten relative to the viewer.
"""
from typing import Optional

from .effects import describe
from .engine import Match, MatchStatus


def _relative(winner_id: Optional[str], viewer_id: str) -> Optional[str]:
    if winner_id is None:
        return None
    return 'you' if winner_id == viewer_id else 'opponent'


def state_for(match: Match, viewer_id: str):
    viewer = match.player(viewer_id)
    opponent = match.opponent_of(viewer_id)
    idx = match.index_of(viewer_id)

    pending = None
    effect = match.pending_effect
    if effect is not None:
        is_target = effect.target_id == viewer.id
        pending = describe(effect)
        pending['can_you_counter'] = is_target and viewer.has_rank(effect.counter_rank)
        pending['must_you_decide'] = is_target and match.status == MatchStatus.WAITING_FOR_COUNTER

    top = match.top_card
    return {
        'match_id': match.id,
        'status': match.status.value,
        'mode': match.mode.value,
        'room_code': match.room_code,
        'your_hand': [c.to_dict() for c in viewer.hand],
        'playable_card_ids': [c.id for c in match.legal_cards(viewer.id)],
        'opponent_card_count': len(opponent.hand),
        'top_card': top.to_dict() if top else None,
        'active_suit': match.active_suit.value if match.active_suit else None,
        'is_your_turn': match.status == MatchStatus.PLAYING and match.current_player.id == viewer.id,
        'deck_count': len(match.deck),
        'discard_count': len(match.discard_pile),
        'pending_effect': pending,
        'turn_deadline': match.turn_deadline,
        'your_score': match.scores[idx],
        'opponent_score': match.scores[1 - idx],
        'current_round': match.current_round,
        'target_score': match.timings.target_score,
        'round_winner': _relative(match.round_winner_id, viewer.id),
        'match_winner': _relative(match.match_winner_id, viewer.id),
        'you': viewer.to_info(),
        'opponent': opponent.to_info(),
    }


def round_over_for(match: Match, viewer_id: str, round_number: int, winner_id: str):
    idx = match.index_of(viewer_id)
    return {
        'round_winner': winner_id,
        'is_winner': winner_id == viewer_id,
        'round_number': round_number,
        'scores': list(match.scores),
        'your_score': match.scores[idx],
        'opponent_score': match.scores[1 - idx],
    }


def match_over_for(match: Match, viewer_id: str):
    idx = match.index_of(viewer_id)
    return {
        'match_winner': match.match_winner_id,
        'is_winner': match.match_winner_id == viewer_id,
        'final_score': list(match.scores),
        'your_score': match.scores[idx],
        'opponent_score': match.scores[1 - idx],
        'reason': match.end_reason.value if match.end_reason else None,
    }
