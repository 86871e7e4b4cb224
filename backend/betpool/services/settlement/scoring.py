from typing import Callable, Dict, Optional

from betpool.models import OUTCOME_AWAY, OUTCOME_DRAW, OUTCOME_HOME


def match_outcome(home_score: int, away_score: int) -> str:
    if home_score > away_score:
        return OUTCOME_HOME
    if home_score < away_score:
        return OUTCOME_AWAY
    return OUTCOME_DRAW


class ExactScoreBonusRule:
    """Correct outcome earns ``outcome_points``; the exact score earns ``exact_points``.

    A wrong outcome earns nothing, whatever the predicted score.
    """

    name = 'exact_score_bonus'

    def __init__(self, exact_points: int = 5, outcome_points: int = 3):
        self.exact_points = exact_points
        self.outcome_points = outcome_points

    def score(self, bet, final_home: int, final_away: int) -> int:
        if bet.predicted_outcome != match_outcome(final_home, final_away):
            return 0
        if bet.predicted_home_score == final_home and bet.predicted_away_score == final_away:
            return self.exact_points
        return self.outcome_points


_rules: Dict[str, Callable[..., ExactScoreBonusRule]] = {
    ExactScoreBonusRule.name: ExactScoreBonusRule,
}


def register_scoring_rule(name: str, factory: Callable) -> None:
    """Make a rule selectable through the ``SCORING_RULE`` config key.

    ``factory`` is called with the ``exact_points`` and ``outcome_points``
    keyword arguments and must return an object exposing ``score(bet, h, a)``.
    """
    _rules[name] = factory


def get_scoring_rule(config: Optional[dict] = None):
    config = config or {}
    name = config.get('SCORING_RULE', ExactScoreBonusRule.name)
    try:
        factory = _rules[name]
    except KeyError:
        raise ValueError(f"Unknown scoring rule: {name}") from None
    return factory(
        exact_points=int(config.get('EXACT_SCORE_POINTS', 5)),
        outcome_points=int(config.get('OUTCOME_POINTS', 3)),
    )


_default_rule = ExactScoreBonusRule()


def score(bet, final_home: int, final_away: int, rule=None) -> int:
    """Points for one bet given the final score. Pure and total."""
    return (rule or _default_rule).score(bet, final_home, final_away)
