"""Errors raised by the match engine and orchestrator.

Every error is raised before any state is touched, so a rejected action
leaves the match exactly as it was. Transport handlers catch ``GameError``
and report ``code`` and ``message`` back to the caller.
"""


class GameError(Exception):
    code = 'game_error'
    default_message = 'Action rejected'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self):
        return {'code': self.code, 'message': self.message}


class MatchNotFound(GameError):
    code = 'match_not_found'
    default_message = 'Match not found'


class PlayerNotFound(GameError):
    code = 'player_not_found'
    default_message = 'Player not found'


class CardNotInHand(GameError):
    code = 'card_not_in_hand'
    default_message = 'You do not hold that card'


class IllegalMove(GameError):
    code = 'illegal_move'
    default_message = 'That move is not allowed'


class NotYourDecision(GameError):
    code = 'not_your_decision'
    default_message = 'You are not the player who must decide'


class MissingCounterCard(GameError):
    code = 'missing_counter_card'
    default_message = 'No counter card specified'


class EmptyDeck(GameError):
    code = 'empty_deck'
    default_message = 'No cards left to draw'
