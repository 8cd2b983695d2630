from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from pydantic import ValidationError

from intune_assignments.data.models import GraphBaseModel
from intune_assignments.utils import get_logger


logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=GraphBaseModel)


@dataclass(slots=True, frozen=True)
class ValidationIssue:
    """One raw Graph item that could not be turned into a model."""

    resource: str
    identifier: str | None
    fields: tuple[str, ...] = ()
    message: str = "Graph payload failed schema validation"

    @classmethod
    def from_error(
        cls, resource: str, payload: Any, error: ValidationError
    ) -> ValidationIssue:
        raw_id = payload.get("id") if isinstance(payload, dict) else None
        return cls(
            resource=resource,
            identifier=None if raw_id is None else str(raw_id),
            fields=tuple(
                ".".join(map(str, detail.get("loc", ()))) for detail in error.errors()
            ),
        )


class GraphResponseValidator:
    """Parses raw items of one resource kind, keeping a record of rejects.

    A reject is logged, passed to ``issue_callback`` and otherwise ignored so a
    single odd object never fails a whole collection.
    """

    def __init__(
        self,
        resource: str,
        *,
        issue_callback: Callable[[ValidationIssue], None] | None = None,
    ) -> None:
        self._resource = resource
        self._issue_callback = issue_callback
        self._issues: list[ValidationIssue] = []

    def parse(
        self,
        model: type[ModelT],
        payload: dict[str, Any],
        **overrides: Any,
    ) -> ModelT | None:
        try:
            return model.from_graph(payload | overrides)
        except ValidationError as exc:
            issue = ValidationIssue.from_error(self._resource, payload, exc)
        self._issues.append(issue)
        logger.warning(
            "Skipping malformed Graph item",
            resource=self._resource,
            identifier=issue.identifier,
            fields=", ".join(issue.fields) or "unknown",
        )
        if self._issue_callback is not None:
            self._issue_callback(issue)
        return None

    def issues(self) -> list[ValidationIssue]:
        return self._issues.copy()

    def reset(self) -> None:
        self._issues = []


__all__ = ["GraphResponseValidator", "ValidationIssue"]
