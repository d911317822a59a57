"""Success envelope shared by all JSON endpoints."""

from __future__ import annotations

from collections.abc import Iterable

from crmdesk.core.errors import DataQualityWarning


def success(
    data: object,
    *,
    warnings: Iterable[DataQualityWarning] | None = None,
    **extra: object,
) -> dict[str, object]:
    body: dict[str, object] = {"success": True, "data": data}
    if warnings is not None:
        body["warnings"] = [warning.to_dict() for warning in warnings]
    body.update(extra)
    return body
