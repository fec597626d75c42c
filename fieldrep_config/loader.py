"""
Configuration Loader (``fieldrep_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into a ``WorkflowConfig``.
The single public entry point for runtime config is
``fieldrep_config.get_active_config()``.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages.
* Every operation of the kernel appears in the capability matrix; an
  unknown operation or role is rejected.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from fieldrep_config.schema import WorkflowConfig
from fieldrep_kernel.domain.aggregation import ReviewRules
from fieldrep_kernel.domain.capabilities import Operation
from fieldrep_kernel.domain.identity import Role
from fieldrep_kernel.domain.validation import SubmissionRules


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _int(data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    return value


def parse_submission_rules(data: dict[str, Any]) -> SubmissionRules:
    """Parse the ``submission`` section; absent keys keep their defaults."""
    defaults = SubmissionRules()
    products = data.get("presented_products", {})
    samples = data.get("sample_quantity", {})
    confidence = data.get("confidence_score", {})
    other_codes = data.get("other_reason_codes", sorted(defaults.other_reason_codes))
    return SubmissionRules(
        narrative_min_length=_int(data, "narrative_min_length", defaults.narrative_min_length),
        min_presented_products=_int(products, "min", defaults.min_presented_products),
        max_presented_products=_int(products, "max", defaults.max_presented_products),
        sample_quantity_min=_int(samples, "min", defaults.sample_quantity_min),
        sample_quantity_max=_int(samples, "max", defaults.sample_quantity_max),
        confidence_score_min=_int(confidence, "min", defaults.confidence_score_min),
        confidence_score_max=_int(confidence, "max", defaults.confidence_score_max),
        confidence_score_default=_int(confidence, "default", defaults.confidence_score_default),
        other_reason_codes=frozenset(str(code) for code in other_codes),
    )


def parse_review_rules(data: dict[str, Any]) -> ReviewRules:
    """Parse the ``review`` section."""
    defaults = ReviewRules()
    raw_value = data.get("sample_unit_value", defaults.sample_unit_value)
    if isinstance(raw_value, float):
        raise ValueError("sample_unit_value must be quoted to avoid float rounding")
    try:
        unit_value = Decimal(str(raw_value))
    except InvalidOperation:
        raise ValueError(f"sample_unit_value is not a decimal: {raw_value!r}") from None
    return ReviewRules(
        sample_unit_value=unit_value,
        currency=str(data.get("currency", defaults.currency)),
    )


def _role(value: Any, where: str) -> Role:
    try:
        return Role(str(value))
    except ValueError:
        raise ValueError(f"Unknown role {value!r} in {where}") from None


def parse_capabilities(data: dict[str, Any]) -> dict[Operation, frozenset[Role]]:
    """
    Parse the ``capabilities`` section (operation -> list of roles).

    Raises:
        ValueError: unknown operation or role, or an operation missing.
    """
    matrix: dict[Operation, frozenset[Role]] = {}
    for op_name, roles in data.items():
        try:
            operation = Operation(op_name)
        except ValueError:
            raise ValueError(f"Unknown operation in capabilities: {op_name!r}") from None
        matrix[operation] = frozenset(
            _role(role, f"capabilities.{op_name}") for role in roles or ()
        )
    missing = [op.value for op in Operation if op not in matrix]
    if missing:
        raise ValueError(f"Capabilities missing for operations: {', '.join(missing)}")
    return matrix


def parse_user_types(data: dict[str, Any]) -> dict[str, Role]:
    return {
        str(user_type).strip().lower(): _role(role, f"user_types.{user_type}")
        for user_type, role in data.items()
    }


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization (deterministic)."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_workflow_config(path: Path) -> WorkflowConfig:
    """
    Load and parse one configuration file.

    Raises:
        FileNotFoundError, yaml.YAMLError, KeyError, ValueError.
    """
    data = load_yaml_file(path)
    if "capabilities" not in data:
        raise KeyError(f"{path}: 'capabilities' section is required")
    kwargs: dict[str, Any] = {
        "config_id": str(data["config_id"]),
        "version": _int(data, "version", 1),
        "checksum": compute_checksum(data),
        "submission": parse_submission_rules(data.get("submission") or {}),
        "review": parse_review_rules(data.get("review") or {}),
        "capabilities": parse_capabilities(data["capabilities"]),
    }
    if data.get("user_types"):
        kwargs["user_types"] = parse_user_types(data["user_types"])
    return WorkflowConfig(**kwargs)
