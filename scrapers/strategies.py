"""
Named extraction strategies and the first-match-wins combinator.

A strategy is (name, fn) where fn returns a value or None. Field priority is the
order of the strategy list, so it can be inspected and tested directly.
"""

from typing import Any, Callable, NamedTuple


class Strategy(NamedTuple):
    name: str
    fn: Callable[..., Any]


class Match(NamedTuple):
    strategy: str
    value: Any


def first_match(strategies: list[Strategy], *args, **kwargs) -> Match | None:
    """Run strategies in order; return the first non-empty result with the strategy name."""
    for strategy in strategies:
        value = strategy.fn(*args, **kwargs)
        if value:
            return Match(strategy.name, value)
    return None
