"""Build filter chains from configuration plans."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Sequence, Union

import yaml

from .chain import FilterChain
from .stages import STAGES, FilterStage

Plan = Union[Sequence[Mapping[str, Any]], Mapping[str, Any]]


def create_stage(step: Mapping[str, Any]) -> FilterStage:
    """Instantiate and prepare one stage from its plan entry.

    A plan entry looks like::

        {"type": "delimited_row", "label": "csv", "ignore_failure": False,
         "params": {"columns": ["name", "age"]}}

    Raises:
        ValueError: If the type is missing or unknown
        MissingArgumentError: If a required parameter is absent
    """
    t = str(step.get("type", "")).lower()
    if not t:
        raise ValueError(f"Stage entry has no 'type': {dict(step)!r}")
    cls = STAGES.get(t)
    if cls is None:
        raise ValueError(f"Unknown stage type '{t}'. Known types: {', '.join(sorted(STAGES))}")

    params = step.get("params", {}) or {}
    stage = cls(label=step.get("label"), ignore_failure=bool(step.get("ignore_failure", False)))
    stage.prepare(params)
    return stage


def build_chain(plan: Plan) -> FilterChain:
    """Build a chain from a list of stage entries (or ``{"filters": [...]}``)."""
    if isinstance(plan, Mapping):
        steps = plan.get("filters", []) or []
    else:
        steps = plan
    if not isinstance(steps, Sequence) or isinstance(steps, (str, bytes)):
        raise ValueError("Chain plan must be a list of stage entries")
    return FilterChain([create_stage(step) for step in steps])


def load_chain_config(config_path: Union[str, Path]) -> FilterChain:
    """Build a chain from a YAML (or JSON) plan file."""
    with open(config_path, "r", encoding="utf-8") as f:
        plan = yaml.safe_load(f)
    return build_chain(plan or [])
