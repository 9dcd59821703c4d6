"""
TTL rule engine for proxied endpoints.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Pattern, Sequence, Tuple, Union

from shared.config import BaseConfig
from shared.logging import get_logger


@dataclass(frozen=True)
class TTLRule:
    """A path pattern with the durations applied to matching requests."""

    name: str
    pattern: Pattern[str]
    success_ttl: int
    failure_ttl: Optional[int] = None

    @classmethod
    def compile(
        cls,
        name: str,
        pattern: Union[str, Pattern[str]],
        success_ttl: int,
        failure_ttl: Optional[int] = None,
    ) -> "TTLRule":
        if isinstance(pattern, str):
            pattern = re.compile(pattern, re.IGNORECASE)
        return cls(name=name, pattern=pattern, success_ttl=success_ttl, failure_ttl=failure_ttl)

    def matches(self, path: str) -> bool:
        return self.pattern.search(path) is not None


@dataclass(frozen=True)
class TTLPolicy:
    """Durations resolved for one request path."""

    success: int
    failure: Optional[int] = None
    rule_name: Optional[str] = None


class TTLRuleEngine:
    """
    Ordered list of TTL rules; the first matching rule wins.

    Rules are fixed at construction. A path that matches no rule gets the
    default success TTL and no failure TTL, so negative results are never
    cached for it.
    """

    def __init__(self, rules: Iterable[TTLRule], default_ttl: int):
        self._rules: Tuple[TTLRule, ...] = tuple(rules)
        self.default_ttl = default_ttl
        self.logger = get_logger("proxy.cache.ttl_rules")

    @property
    def rules(self) -> Sequence[TTLRule]:
        return self._rules

    def ttl_for(self, path: str) -> TTLPolicy:
        """Resolve the TTL policy for a raw (unnormalized) request path."""
        for rule in self._rules:
            if rule.matches(path):
                self.logger.debug("TTL rule matched", path=path, rule=rule.name)
                return TTLPolicy(
                    success=rule.success_ttl,
                    failure=rule.failure_ttl,
                    rule_name=rule.name,
                )

        return TTLPolicy(success=self.default_ttl)


def default_rules(config: BaseConfig) -> Tuple[TTLRule, ...]:
    """Build the endpoint TTL rules from configuration."""
    return (
        TTLRule.compile(
            "donki_notifications",
            r"donki/notifications",
            config.donki_success_ttl,
            config.donki_failure_ttl,
        ),
        # Must precede the generic EPIC rule
        TTLRule.compile(
            "epic_available",
            r"epic/api/natural/available",
            config.epic_available_cache_ttl,
        ),
        TTLRule.compile("epic", r"/epic/", config.epic_cache_ttl, config.epic_404_min_ttl),
        TTLRule.compile("apod", r"planetary/apod", config.apod_cache_ttl, config.apod_404_min_ttl),
        TTLRule.compile("mars_rovers", r"mars-photos", config.rovers_cache_ttl),
        TTLRule.compile("insight_weather", r"insight_weather", config.insight_weather_cache_ttl),
    )


def build_rule_engine(config: BaseConfig) -> TTLRuleEngine:
    """Create the rule engine used by the proxy service."""
    return TTLRuleEngine(default_rules(config), config.default_ttl)
