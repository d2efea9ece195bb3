"""
Per-turn parameter normalization.

Contract
- Callers pass a dict of turn parameters to `stream_turn`.
- Standard keys work across providers:
  max_tokens: int
  temperature: float
  top_p: float
  stop: str | list[str]
  tool_choice: str | dict
  thinking_budget: int   (0 disables extended reasoning)
  user: str

- Provider specific keys go under `extra` and pass through unchanged.
  Examples:
    extra.metadata: dict
    extra.reasoning_effort: "low" | "medium" | "high"

Unknown top-level keys are moved into extra.
Unknown extra keys are forwarded as-is.
"""

from __future__ import annotations

from typing import Any

STANDARD_KEYS = {
    "max_tokens",
    "temperature",
    "top_p",
    "stop",
    "tool_choice",
    "thinking_budget",
    "user",
}


def normalize_params(params: dict | None) -> dict:
    """
    Normalize a user-supplied params dict to a single internal shape.

    Returns a dict with only standard keys plus an `extra` dict.
    Rules:
      - Keys not in STANDARD_KEYS are moved into extra
      - If the caller already passed an `extra` dict it is merged last
      - None values are kept so adapters can decide to drop them
      - `stream` is dropped; every turn is streamed

    Example
    -------
    >>> normalize_params({
    ...   "temperature": 1.0,
    ...   "max_tokens": 8192,
    ...   "reasoning_effort": "high",
    ...   "extra": {"metadata": {"user_id": "u1"}}
    ... })
    {'temperature': 1.0, 'max_tokens': 8192,
     'extra': {'reasoning_effort': 'high', 'metadata': {'user_id': 'u1'}}}
    """
    if params is None:
        return {"extra": {}}
    if not isinstance(params, dict):
        raise TypeError(f"params must be a dict, got {type(params).__name__}")

    std: dict = {}
    extra: dict = {}

    user_extra = params.get("extra") or {}
    if user_extra and not isinstance(user_extra, dict):
        raise TypeError("params['extra'] must be a dict")

    for key, value in params.items():
        if key in ("extra", "stream"):
            continue
        if key in STANDARD_KEYS:
            std[key] = value
        else:
            extra[key] = value

    # Final extra merge: moved unknowns first, then user-provided extra wins
    std["extra"] = {**extra, **user_extra}
    return std


def merge_params(defaults: dict | None, overrides: dict | None) -> dict:
    """
    Shallow-merge client defaults with per-call overrides, then normalize.

    Rules:
      - Top-level keys are overwritten by overrides
      - `extra` is merged with overrides winning per key
    """
    base: dict = dict(defaults or {})
    if overrides:
        base_extra = dict(base.get("extra") or {})
        over_extra = dict(overrides.get("extra") or {})

        for k, v in overrides.items():
            if k != "extra":
                base[k] = v

        base["extra"] = {**base_extra, **over_extra}

    return normalize_params(base)
