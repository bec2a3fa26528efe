"""Per-domain request delays and retry backoff for the collectors."""

from __future__ import annotations

import random
from typing import Dict, Mapping, Optional

from config.settings import RATE_LIMITING_CONFIG


def _normalize_domain(domain: str) -> str:
    """Return a lowercase domain without port information."""
    if not domain:
        return ""
    return domain.split(":", 1)[0].lower()


def _candidate_domains(domain: str) -> list[str]:
    normalized = _normalize_domain(domain)
    if not normalized:
        return []
    candidates = [normalized]
    if normalized.startswith("www."):
        candidates.append(normalized[4:])
    else:
        candidates.append(f"www.{normalized}")
    return candidates


def resolve_domain_override(
    domain: str, overrides: Optional[Dict[str, float]] = None
) -> float:
    """Return the configured minimum delay (seconds) for a domain, if any."""

    config_overrides = (
        overrides
        if overrides is not None
        else RATE_LIMITING_CONFIG.get("domain_overrides", {})
    )
    if not config_overrides:
        return 0.0

    for candidate in _candidate_domains(domain):
        if candidate in config_overrides:
            return float(config_overrides[candidate])
    return 0.0


def calculate_effective_delay(
    domain: str,
    source_min_delay: Optional[float] = None,
    config: Optional[Mapping[str, float]] = None,
) -> float:
    """Largest of the global, per-domain default, override and source delays."""

    cfg = config if config is not None else RATE_LIMITING_CONFIG
    base_delay = float(cfg.get("domain_default_delay", cfg["delay_between_requests"]))
    global_min = float(cfg["delay_between_requests"])
    source_component = float(source_min_delay) if source_min_delay is not None else 0.0
    domain_component = resolve_domain_override(domain, cfg.get("domain_overrides"))

    return max(base_delay, global_min, domain_component, source_component)


def backoff_delay(attempt: int, config: Optional[Mapping[str, float]] = None) -> float:
    """Exponential backoff ``base * 2**attempt`` plus jitter, capped at ``backoff_max``."""

    cfg = config if config is not None else RATE_LIMITING_CONFIG
    base = float(cfg.get("backoff_base", 0.5))
    ceiling = float(cfg.get("backoff_max", 10.0))
    jitter = random.uniform(0, float(cfg.get("jitter_max", 0.3)))
    return min(ceiling, base * (2**attempt) + jitter)
