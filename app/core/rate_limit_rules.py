"""Route classification for rate limiting.

Maps ``(method, path)`` to the ``RateLimitConfig`` of its route class. The
table is data: an ordered list of ``RouteRule`` evaluated first-match-wins,
then per-method defaults, then a global fallback. Mutating and
authentication endpoints carry stricter quotas than reads.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Iterable, Mapping

from app.core.errors import ConfigurationAppError
from app.core.rate_limit import RateLimitConfig, build_key_generator, normalize_path

logger = logging.getLogger(__name__)

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS

ANY_METHOD = "*"
FALLBACK_METHOD = "ALL"

HTTP_METHODS = frozenset({"GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"})

# Testing lifts limits so unrelated test suites never trip them.
TESTING_LIMIT = RateLimitConfig(max_requests=10_000, window_ms=MINUTE_MS)


@dataclass(frozen=True)
class RouteRule:
    """Pure predicate over method + normalized path, paired with a quota.

    Attributes:
        method: HTTP method, or ``"*"`` for any.
        pattern: Normalized path (``/api/jobs/[id]``) or an fnmatch glob
            (``/api/auth/*``).
        config: Quota for matching requests.
    """

    method: str
    pattern: str
    config: RateLimitConfig

    def __post_init__(self) -> None:
        method = self.method.upper()
        if method != ANY_METHOD and method not in HTTP_METHODS:
            raise ConfigurationAppError(
                code="invalid_rate_limit_rule",
                message=f"Unknown HTTP method in rate limit rule: {self.method}",
                details={"method": self.method, "pattern": self.pattern},
            )
        if not self.pattern.startswith("/"):
            raise ConfigurationAppError(
                code="invalid_rate_limit_rule",
                message="Rate limit rule pattern must be an absolute path",
                details={"method": self.method, "pattern": self.pattern},
            )
        object.__setattr__(self, "method", method)

    def matches(self, method: str, path: str) -> bool:
        if self.method != ANY_METHOD and self.method != method.upper():
            return False
        if self.pattern == path:
            return True
        return any(ch in self.pattern for ch in "*?") and fnmatchcase(path, self.pattern)


@dataclass(frozen=True)
class RouteClass:
    """Resolved route class of a request.

    Attributes:
        name: Bucket component shared by every request of the class:
            ``"POST:/api/jobs"`` for a rule match, ``"DELETE:*"`` for a
            method default and ``"ALL:*"`` for the global fallback.
        config: Environment-adjusted quota of the class.
        rule: Matching rule, or None when a default applied.
    """

    name: str
    config: RateLimitConfig
    rule: RouteRule | None = None


def apply_environment_adjustments(config: RateLimitConfig, environment: str) -> RateLimitConfig:
    """Adjust a quota for the running environment.

    - development: limits doubled for manual testing
    - testing: limits lifted to ``TESTING_LIMIT``
    - anything else: unchanged
    """

    if environment == "development":
        return config.model_copy(update={"max_requests": config.max_requests * 2})
    if environment == "testing":
        return config.model_copy(
            update={
                "max_requests": TESTING_LIMIT.max_requests,
                "window_ms": TESTING_LIMIT.window_ms,
            }
        )
    return config


class RateLimitRules:
    """Ordered rule table resolving the quota for a request."""

    def __init__(
        self,
        rules: Iterable[RouteRule],
        *,
        method_defaults: Mapping[str, RateLimitConfig] | None = None,
        fallback: RateLimitConfig,
        environment: str = "production",
    ) -> None:
        self._rules = tuple(rules)
        self._method_defaults = {m.upper(): c for m, c in (method_defaults or {}).items()}
        self._fallback = fallback
        self._environment = environment

        unknown = set(self._method_defaults) - HTTP_METHODS
        if unknown:
            raise ConfigurationAppError(
                code="invalid_rate_limit_rule",
                message=f"Unknown HTTP method in rate limit defaults: {sorted(unknown)}",
            )

    @property
    def rules(self) -> tuple[RouteRule, ...]:
        return self._rules

    @property
    def environment(self) -> str:
        return self._environment

    def match(self, method: str, path: str) -> RouteRule | None:
        normalized = normalize_path(path)
        for rule in self._rules:
            if rule.matches(method, normalized):
                return rule
        return None

    def classify(self, method: str, path: str) -> RouteClass:
        """Resolve the route class ``method`` + ``path`` is counted against.

        Unlisted paths collapse into their method default or the fallback
        class, so varying the path never yields a fresh bucket.
        """

        method = method.upper()
        rule = self.match(method, path)
        if rule is not None:
            name, config = f"{method}:{rule.pattern}", rule.config
        elif method in self._method_defaults:
            name, config = f"{method}:{ANY_METHOD}", self._method_defaults[method]
        else:
            name, config = f"{FALLBACK_METHOD}:{ANY_METHOD}", self._fallback
        return RouteClass(
            name=name,
            config=apply_environment_adjustments(config, self._environment),
            rule=rule,
        )

    def resolve(self, method: str, path: str) -> RateLimitConfig:
        """Return the environment-adjusted quota for ``method`` + ``path``."""

        return self.classify(method, path).config


def _per_minute(max_requests: int, message: str) -> RateLimitConfig:
    return RateLimitConfig(max_requests=max_requests, window_ms=MINUTE_MS, message=message)


JOBS_API_RULES: tuple[RouteRule, ...] = (
    RouteRule("GET", "/api/jobs", _per_minute(120, "Too many job list requests. Wait 1 minute.")),
    RouteRule("GET", "/api/jobs/stats", _per_minute(80, "Too many statistics requests. Wait 1 minute.")),
    RouteRule("GET", "/api/jobs/rejected", _per_minute(60, "Too many rejected job requests. Wait 1 minute.")),
    RouteRule("POST", "/api/jobs/rejected", _per_minute(20, "Too many rejection updates. Wait 1 minute.")),
    RouteRule("GET", "/api/jobs/[id]", _per_minute(200, "Too many job lookups. Wait 1 minute.")),
    RouteRule("POST", "/api/jobs", _per_minute(15, "Too many jobs created. Wait 1 minute before creating more.")),
    RouteRule("PUT", "/api/jobs/[id]", _per_minute(25, "Too many job updates. Wait 1 minute.")),
    RouteRule("DELETE", "/api/jobs/[id]", _per_minute(8, "Too many job deletions. Wait 1 minute.")),
)

AUTH_API_RULES: tuple[RouteRule, ...] = (
    RouteRule(
        "POST",
        "/api/auth/login",
        RateLimitConfig(
            max_requests=5,
            window_ms=15 * MINUTE_MS,
            message="Too many login attempts. Try again in 15 minutes.",
            key_generator=build_key_generator("auth:login", include_user_agent=True),
        ),
    ),
    RouteRule(
        "POST",
        "/api/auth/register",
        RateLimitConfig(
            max_requests=3,
            window_ms=HOUR_MS,
            message="Too many registrations from this address. Try again in 1 hour.",
            key_generator=build_key_generator("auth:register"),
        ),
    ),
    RouteRule(
        "POST",
        "/api/auth/reset-password",
        RateLimitConfig(
            max_requests=5,
            window_ms=HOUR_MS,
            message="Too many password reset attempts. Try again in 1 hour.",
        ),
    ),
)

METHOD_DEFAULTS: dict[str, RateLimitConfig] = {
    "GET": _per_minute(100, "Too many read requests. Wait 1 minute."),
    "POST": _per_minute(30, "Too many create requests. Wait 1 minute."),
    "PUT": _per_minute(40, "Too many update requests. Wait 1 minute."),
    "DELETE": _per_minute(15, "Too many delete requests. Wait 1 minute."),
}

GLOBAL_FALLBACK = _per_minute(200, "Request limit exceeded. Wait 1 minute.")


def build_default_rules(environment: str) -> RateLimitRules:
    """Build the static rule table used by the API."""

    rules = RateLimitRules(
        (*JOBS_API_RULES, *AUTH_API_RULES),
        method_defaults=METHOD_DEFAULTS,
        fallback=GLOBAL_FALLBACK,
        environment=environment,
    )
    logger.info(
        "rate_limit.rules_loaded",
        extra={"rule_count": len(rules.rules), "environment": environment},
    )
    return rules
