"""Match domain services: cards, rules engine, timers and stats.

Everything here except ``scoring`` is free of Flask. Socket handlers and
HTTP routes talk to a ``MatchService`` and never mutate a ``Match``
directly.
"""
