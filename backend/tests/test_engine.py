import pytest

from cardduel.services.games.cards import DECK_SIZE, Suit
from cardduel.services.games.effects import Block, ForcedDraw
from cardduel.services.games.engine import EndReason, MatchStatus, MatchTimings
from cardduel.services.games.errors import (CardNotInHand, EmptyDeck, IllegalMove, MissingCounterCard,
                                            NotYourDecision, PlayerNotFound)
from cardduel.services.games.events import EventType

C, S, U, K = Suit.COINS, Suit.SWORDS, Suit.CUPS, Suit.CLUBS


def card_of(player, suit, rank):
    return next(c for c in player.hand if c.suit == suit and c.rank == rank)


def event_types(match):
    return [e.event_type for e in match.events.drain()]


@pytest.mark.parametrize('seed', range(25))
def test_start_round_deals_five_each_and_never_opens_on_a_special(make_match, seed):
    match = make_match(seed=seed)
    match.start_round()
    assert [len(p.hand) for p in match.players] == [5, 5]
    assert len(match.discard_pile) == 1
    assert match.top_card.rank not in (1, 2, 7)
    assert match.active_suit == match.top_card.suit
    assert match.status == MatchStatus.PLAYING
    assert match.card_total() == DECK_SIZE


def test_first_round_starts_with_player_zero_then_alternates(make_match, rigged):
    match = make_match()
    match.start_round()
    assert match.current_player.id == 'alice'
    assert event_types(match) == [EventType.ROUND_STARTED]

    rigged(match, [(C, 5)], [(S, 3), (U, 4)], (C, 10))
    match.play_card('alice', card_of(match.players[0], C, 5).id)
    assert match.status == MatchStatus.ROUND_OVER
    match.start_round()
    assert match.current_round == 2
    assert match.current_player.id == 'bob'


def test_start_round_rejected_mid_round(make_match):
    match = make_match()
    match.start_round()
    with pytest.raises(IllegalMove):
        match.start_round()


def test_rank_and_suit_matches_are_legal(make_match, rigged):
    match = rigged(make_match(), [(S, 5), (C, 3), (K, 4)], [(U, 6)], (C, 5))
    alice = match.players[0]
    legal = {(c.suit, c.rank) for c in match.legal_cards('alice')}
    assert legal == {(S, 5), (C, 3)}
    assert not match.can_play('alice', card_of(alice, K, 4))
    assert match.has_any_legal_move('alice')


def test_illegal_card_is_rejected_without_touching_state(make_match, rigged):
    match = rigged(make_match(), [(K, 4), (C, 3)], [(U, 6)], (C, 5))
    alice = match.players[0]
    before = (list(alice.hand), list(match.discard_pile), match.current_player_index, match.turn_serial)
    with pytest.raises(IllegalMove):
        match.play_card('alice', card_of(alice, K, 4).id)
    assert (list(alice.hand), list(match.discard_pile), match.current_player_index, match.turn_serial) == before


def test_playing_out_of_turn_or_unknown_card(make_match, rigged):
    match = rigged(make_match(), [(C, 3)], [(C, 6), (U, 4)], (C, 5))
    bob = match.players[1]
    with pytest.raises(IllegalMove):
        match.play_card('bob', card_of(bob, C, 6).id)
    with pytest.raises(CardNotInHand):
        match.play_card('alice', card_of(bob, C, 6).id)
    with pytest.raises(PlayerNotFound):
        match.play_card('mallory', 'nope')


def test_normal_play_sets_suit_and_passes_turn(make_match, rigged):
    match = rigged(make_match(), [(S, 5), (C, 3)], [(U, 6)], (C, 5))
    serial = match.turn_serial
    match.play_card('alice', card_of(match.players[0], S, 5).id)
    assert match.active_suit == S
    assert match.current_player.id == 'bob'
    assert match.turn_serial == serial + 1
    assert match.card_total() == DECK_SIZE


def test_wild_needs_a_suit_and_sets_it(make_match, rigged):
    match = rigged(make_match(), [(C, 7), (S, 4)], [(U, 6)], (C, 5))
    alice = match.players[0]
    wild = card_of(alice, C, 7)
    with pytest.raises(IllegalMove):
        match.play_card('alice', wild.id)
    with pytest.raises(IllegalMove):
        match.play_card('alice', wild.id, 'hearts')
    assert alice.has_card(wild.id)

    match.play_card('alice', wild.id, 'cups')
    assert match.active_suit == U
    assert match.pending_effect is None
    assert match.current_player.id == 'bob'


def test_block_without_counter_gives_player_another_turn(make_match, rigged):
    match = rigged(make_match(), [(C, 1), (C, 6)], [(S, 3), (U, 4)], (C, 10))
    match.play_card('alice', card_of(match.players[0], C, 1).id)
    assert match.status == MatchStatus.PLAYING
    assert match.pending_effect is None
    assert match.current_player.id == 'alice'
    assert match.active_suit == C
    assert match.card_total() == DECK_SIZE


def test_block_with_counter_waits_then_decline_returns_turn(make_match, rigged):
    match = rigged(make_match(), [(C, 1), (C, 6)], [(S, 1), (U, 4)], (C, 10))
    match.play_card('alice', card_of(match.players[0], C, 1).id)
    assert match.status == MatchStatus.WAITING_FOR_COUNTER
    assert isinstance(match.pending_effect, Block)
    assert match.pending_effect.target_id == 'bob'
    assert match.turn_deadline is None

    with pytest.raises(IllegalMove):
        match.draw_card('alice')
    with pytest.raises(IllegalMove):
        match.play_card('alice', card_of(match.players[0], C, 6).id)
    with pytest.raises(NotYourDecision):
        match.decide_counter('alice', False)

    match.decide_counter('bob', False)
    assert match.status == MatchStatus.PLAYING
    assert match.current_player.id == 'alice'
    assert match.pending_effect is None
    assert match.active_suit == C


def test_block_counter_window_times_out(make_match, rigged, clock):
    match = rigged(make_match(), [(C, 1), (C, 6)], [(S, 1), (U, 4)], (C, 10))
    match.play_card('alice', card_of(match.players[0], C, 1).id)
    deadline = match.pending_effect.counter_deadline
    assert deadline == clock() + 10
    assert not match.expire_counter(now=deadline - 0.5)
    clock.advance(10)
    assert match.expire_counter()
    assert match.current_player.id == 'alice'
    assert len(match.players[1].hand) == 2


def test_countering_a_block_hands_the_turn_to_the_counterer(make_match, rigged):
    match = rigged(make_match(), [(C, 1), (C, 6)], [(S, 1), (U, 4)], (C, 10))
    match.play_card('alice', card_of(match.players[0], C, 1).id)
    match.decide_counter('bob', True, card_of(match.players[1], S, 1).id)
    assert match.status == MatchStatus.PLAYING
    assert match.current_player.id == 'bob'
    assert match.active_suit == S


def test_block_chain_rearms_against_the_original_player(make_match, rigged):
    match = rigged(make_match(), [(C, 1), (U, 1), (C, 6)], [(S, 1), (U, 4)], (C, 10))
    match.play_card('alice', card_of(match.players[0], C, 1).id)
    match.decide_counter('bob', True, card_of(match.players[1], S, 1).id)
    effect = match.pending_effect
    assert isinstance(effect, Block)
    assert (effect.source_id, effect.target_id) == ('bob', 'alice')
    match.decide_counter('alice', False)
    assert match.current_player.id == 'bob'


def test_counter_needs_a_card(make_match, rigged):
    match = rigged(make_match(), [(C, 1), (C, 6)], [(S, 1), (U, 4)], (C, 10))
    match.play_card('alice', card_of(match.players[0], C, 1).id)
    with pytest.raises(MissingCounterCard):
        match.decide_counter('bob', True)
    with pytest.raises(IllegalMove):
        match.decide_counter('bob', True, card_of(match.players[1], U, 4).id)
    assert isinstance(match.pending_effect, Block)


def test_forced_draw_without_counter_resolves_immediately(make_match, rigged):
    match = rigged(make_match(), [(C, 2), (C, 6)], [(S, 3), (U, 4)], (C, 10))
    match.play_card('alice', card_of(match.players[0], C, 2).id)
    assert match.status == MatchStatus.PLAYING
    assert len(match.players[1].hand) == 4
    assert match.current_player.id == 'alice'
    assert match.card_total() == DECK_SIZE


def test_forced_draw_declined_makes_target_draw_two(make_match, rigged):
    match = rigged(make_match(), [(C, 2), (C, 6)], [(S, 2), (U, 4)], (C, 10))
    match.play_card('alice', card_of(match.players[0], C, 2).id)
    assert isinstance(match.pending_effect, ForcedDraw)
    assert match.pending_effect.draw_count == 2
    match.decide_counter('bob', False)
    assert len(match.players[1].hand) == 4
    assert match.current_player.id == 'alice'
    assert match.active_suit == C


def test_forced_draw_taken_with_draw_card(make_match, rigged):
    match = rigged(make_match(), [(C, 2), (C, 6)], [(S, 2), (U, 4)], (C, 10))
    match.play_card('alice', card_of(match.players[0], C, 2).id)
    drawn = match.draw_card('bob')
    assert len(drawn) == 2
    assert len(match.players[1].hand) == 4
    assert match.status == MatchStatus.PLAYING


def test_forced_draw_window_is_longer_than_block(make_match, rigged, clock):
    match = rigged(make_match(), [(C, 2), (C, 6)], [(S, 2), (U, 4)], (C, 10))
    match.play_card('alice', card_of(match.players[0], C, 2).id)
    assert match.pending_effect.counter_deadline == clock() + 15
    clock.advance(10)
    assert not match.expire_counter()
    clock.advance(5)
    assert match.expire_counter()
    assert len(match.players[1].hand) == 4


def test_forced_draw_stacks_two_four_six(make_match, rigged):
    match = rigged(make_match(), [(C, 2), (S, 2), (U, 3), (U, 4)], [(U, 2), (K, 5), (K, 6)], (C, 10))
    alice, bob = match.players
    match.play_card('alice', card_of(alice, C, 2).id)
    assert match.pending_effect.draw_count == 2

    match.decide_counter('bob', True, card_of(bob, U, 2).id)
    effect = match.pending_effect
    assert (effect.target_id, effect.draw_count) == ('alice', 4)

    match.decide_counter('alice', True, card_of(alice, S, 2).id)
    # Bob holds no more 2s, so the stack of six lands on him at once
    assert match.pending_effect is None
    assert len(bob.hand) == 2 + 6
    assert match.current_player.id == 'alice'
    assert match.status == MatchStatus.PLAYING
    assert match.card_total() == DECK_SIZE


def test_short_forced_draw_takes_what_is_left(make_match, rigged):
    match = rigged(make_match(), [(C, 2), (C, 6)], [(S, 3)], (C, 10))
    alice, bob = match.players
    # Park the deck in alice's hand; only the recycled 10 can still be drawn
    alice.hand.extend(match.deck)
    match.deck = []
    match.play_card('alice', card_of(alice, C, 2).id)
    assert len(bob.hand) == 2
    assert [(c.suit, c.rank) for c in match.discard_pile] == [(C, 2)]
    assert match.status == MatchStatus.PLAYING
    assert match.card_total() == DECK_SIZE


def test_draw_card_passes_turn_and_empty_pool_raises(make_match, rigged):
    match = rigged(make_match(), [(K, 4)], [(U, 6)], (C, 10))
    match.draw_card('alice')
    assert len(match.players[0].hand) == 2
    assert match.current_player.id == 'bob'

    bob = match.players[1]
    bob.hand.extend(match.deck)
    match.deck = []
    with pytest.raises(EmptyDeck):
        match.draw_card('bob')
    assert match.current_player.id == 'bob'


def test_emptying_hand_ends_round_before_any_counter(make_match, rigged):
    match = rigged(make_match(), [(C, 1)], [(S, 1), (U, 4)], (C, 10))
    match.play_card('alice', card_of(match.players[0], C, 1).id)
    assert match.status == MatchStatus.ROUND_OVER
    assert match.pending_effect is None
    assert match.scores == [1, 0]
    assert match.round_winner_id == 'alice'
    assert match.current_round == 2
    types = event_types(match)
    assert types.count(EventType.ROUND_ENDED) == 1
    assert EventType.MATCH_ENDED not in types


def test_fifth_round_win_ends_match_fourth_does_not(make_match, rigged):
    match = rigged(make_match(), [(C, 5)], [(U, 4)], (C, 10))
    match.scores = [3, 2]
    match.play_card('alice', card_of(match.players[0], C, 5).id)
    assert match.status == MatchStatus.ROUND_OVER
    assert match.scores == [4, 2]

    match.start_round()
    rigged(match, [(U, 4)], [(C, 5)], (C, 10), current=1)
    match.scores = [4, 4]
    match.play_card('bob', card_of(match.players[1], C, 5).id)
    assert match.scores == [4, 5]
    assert match.status == MatchStatus.MATCH_OVER
    assert match.match_winner_id == 'bob'
    assert match.end_reason == EndReason.MATCH_WON
    assert match.is_terminal
    with pytest.raises(IllegalMove):
        match.start_round()


def test_target_score_is_configurable(make_match, rigged):
    match = rigged(make_match(timings=MatchTimings(target_score=1)), [(C, 5)], [(U, 4)], (C, 10))
    match.play_card('alice', card_of(match.players[0], C, 5).id)
    assert match.status == MatchStatus.MATCH_OVER


def test_auto_play_prefers_plain_card_over_wild(make_match, rigged):
    match = rigged(make_match(), [(C, 7), (C, 3), (U, 4)], [(S, 6)], (C, 5))
    action = match.auto_play()
    assert action.action == 'play'
    assert (action.card.suit, action.card.rank) == (C, 3)
    assert match.current_player.id == 'bob'
    assert EventType.AUTO_PLAYED in event_types(match)


def test_auto_play_wild_picks_suit_held_most(make_match, rigged):
    match = rigged(make_match(), [(S, 7), (U, 4), (U, 6), (K, 3)], [(S, 6)], (C, 7))
    action = match.auto_play()
    assert action.card.rank == 7
    assert action.suit == U
    assert match.active_suit == U


def test_auto_play_draws_then_passes(make_match, rigged):
    match = rigged(make_match(), [(K, 4)], [(U, 6)], (C, 10))
    assert match.auto_play().action == 'draw'
    assert len(match.players[0].hand) == 2

    bob = match.players[1]
    bob.hand.extend(match.deck)
    match.deck = []
    bob.hand = [c for c in bob.hand if not match.can_play('bob', c)]
    assert match.auto_play().action == 'pass'
    assert match.current_player.id == 'alice'


def test_abandon_awards_match_to_opponent(make_match):
    match = make_match()
    match.start_round()
    match.events.drain()
    assert match.abandon('alice')
    assert match.status == MatchStatus.ABANDONED
    assert match.match_winner_id == 'bob'
    assert match.end_reason == EndReason.OPPONENT_DISCONNECTED
    assert event_types(match) == [EventType.MATCH_ENDED]
    assert not match.abandon('bob')
    with pytest.raises(IllegalMove):
        match.draw_card('bob')


def test_cards_are_conserved_through_a_random_playthrough(make_match):
    match = make_match(seed=11)
    match.start_round()
    for _ in range(400):
        if match.is_terminal:
            break
        if match.status == MatchStatus.ROUND_OVER:
            match.start_round()
        elif match.status == MatchStatus.WAITING_FOR_COUNTER:
            match.decide_counter(match.pending_effect.target_id, False)
        else:
            match.auto_play()
        assert match.card_total() == DECK_SIZE
    assert match.current_round >= 1
