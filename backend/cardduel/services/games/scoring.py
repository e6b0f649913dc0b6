from cardduel.services import profiles, rooms
from cardduel.services.games.events import MatchOutcome, RoundOutcome


class StatsRecorder:
    """Persist round and match outcomes onto visitor profiles.

    Outcomes arrive from whatever thread finished the match (a socket handler
    or a timer task), so every write runs inside its own app context.
    """

    def __init__(self, app):
        self.app = app

    def record_round(self, outcome: RoundOutcome) -> None:
        with self.app.app_context():
            profiles.record_round(outcome.winner_id, outcome.player_ids)

    def record_match(self, outcome: MatchOutcome) -> None:
        """+1 match for both players; the winner extends a streak, the other resets it."""
        with self.app.app_context():
            profiles.record_match(outcome.winner_id, list(outcome.rounds_won))
            if outcome.room_code:
                rooms.finish_room(outcome.room_code)
            self.app.logger.info(f"[stats] match={outcome.match_id} winner={outcome.winner_id} "
                                 f"reason={outcome.reason}")
