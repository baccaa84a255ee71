"""Wait-reason normalization for queued builds.

TeamCity reports why a build is waiting as free text, often suffixed with
build-specific detail. The rules below reduce that text to a label value that
stays stable across builds. They are applied in order:

1. keep the text before the first ``:``
2. keep the text before the first ``,``
3. drop every quoted span (``"..."``), quotes included

The result is used verbatim, surrounding spaces included.

Two classification modes sit on top of the normalized text: ``prefix`` keeps
it as the label value, ``enum`` maps it onto a small closed set of buckets.
"""

from __future__ import annotations

from typing import Callable, Tuple

from .config import DEFAULT_REASON, REASON_MODE_ENUM, REASON_MODE_PREFIX, REASON_MODES
from .errors import ConfigurationError

REASON_RULES_VERSION = 3

REASON_NO_COMPATIBLE_AGENTS = "no_compatible_agents"
REASON_NO_IDLE_AGENTS = "no_idle_agents"
REASON_DEPENDENCIES = "dependencies"
REASON_WAITING_FOR_RESOURCE = "waiting_for_resource"
REASON_OTHER = "other"

# Matched in order against the normalized text.
ENUM_PREFIXES: Tuple[Tuple[str, str], ...] = (
    ("There are no compatible", REASON_NO_COMPATIBLE_AGENTS),
    ("There are no idle compatible agents", REASON_NO_IDLE_AGENTS),
    ("Build dependencies have not been built yet", REASON_DEPENDENCIES),
    ("Waiting for resource", REASON_WAITING_FOR_RESOURCE),
)


def strip_after_colon(reason: str) -> str:
    return reason.split(":", 1)[0]


def strip_after_comma(reason: str) -> str:
    return reason.split(",", 1)[0]


def strip_quoted_spans(reason: str) -> str:
    """Remove quoted spans, quotes included, while at least two quotes remain."""
    while reason.count('"') >= 2:
        start = reason.index('"')
        end = reason.index('"', start + 1)
        reason = reason[:start] + reason[end + 1:]
    return reason


REASON_RULES: Tuple[Callable[[str], str], ...] = (
    strip_after_colon,
    strip_after_comma,
    strip_quoted_spans,
)


def normalize_reason(raw_reason: str, default_reason: str = DEFAULT_REASON) -> str:
    """Reduce a raw wait reason to its stable prefix.

    An empty reason is replaced by ``default_reason`` before the rules run.
    """
    reason = raw_reason or default_reason
    for rule in REASON_RULES:
        reason = rule(reason)
    return reason


def classify_enum(normalized_reason: str) -> str:
    """Map a normalized reason onto one of the closed buckets by prefix."""
    for prefix, key in ENUM_PREFIXES:
        if normalized_reason.startswith(prefix):
            return key
    return REASON_OTHER


class ReasonClassifier:
    """Callable turning raw wait reasons into label values for the configured mode.

    ``prefix`` mode yields the normalized free text (high cardinality).
    ``enum`` mode yields one of the ``ENUM_PREFIXES`` keys or ``other``. The two
    modes produce different label values and must not be mixed on one series.
    """

    def __init__(self, mode: str = REASON_MODE_PREFIX, default_reason: str = DEFAULT_REASON) -> None:
        if mode not in REASON_MODES:
            raise ConfigurationError(f"Unknown reason classification mode: {mode!r}")
        self.mode = mode
        self.default_reason = default_reason

    def __call__(self, raw_reason: str) -> str:
        normalized = normalize_reason(raw_reason, self.default_reason)
        if self.mode == REASON_MODE_ENUM:
            return classify_enum(normalized)
        return normalized
