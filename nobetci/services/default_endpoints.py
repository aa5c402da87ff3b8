"""Built-in endpoint configuration (default_endpoints.yaml).

Used when a province has no enabled rows in source_endpoints. Entries are
validated into SourceEndpointConfig on load; built-in ids must be <= 0.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from nobetci.schemas.duty import SourceEndpointConfig

_DEFAULTS_PATH = Path(__file__).parent / "default_endpoints.yaml"


@lru_cache(maxsize=1)
def load_default_endpoints() -> dict[str, tuple[SourceEndpointConfig, ...]]:
    """Parse default_endpoints.yaml into endpoint configs keyed by province slug.

    Raises:
        ValueError: If the YAML is malformed, an entry fails validation, or
            an entry has a positive id.
    """
    try:
        with _DEFAULTS_PATH.open(encoding="utf-8") as f:
            data: dict[str, Any] = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Default endpoints YAML is malformed: {exc}") from exc

    result: dict[str, tuple[SourceEndpointConfig, ...]] = {}
    for slug, entries in (data.get("endpoints") or {}).items():
        configs = []
        for entry in entries or []:
            try:
                config = SourceEndpointConfig(
                    source_endpoint_id=entry["id"],
                    province_slug=slug,
                    **{k: v for k, v in entry.items() if k != "id"},
                )
            except (KeyError, ValidationError) as exc:
                raise ValueError(f"Invalid default endpoint for {slug}: {exc}") from exc
            if not config.is_builtin:
                raise ValueError(f"Default endpoint ids must be <= 0 (got {config.source_endpoint_id} for {slug})")
            configs.append(config)
        result[slug] = tuple(configs)
    return result


def get_default_endpoints(province_slug: str) -> list[SourceEndpointConfig]:
    """Built-in endpoints for a province, primary first; [] if none."""
    configs = load_default_endpoints().get(province_slug, ())
    return sorted(configs, key=lambda c: (not c.is_primary, -c.authority_weight, -c.source_endpoint_id))
