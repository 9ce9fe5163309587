"""
Template engine exceptions.

The API layer maps these onto HTTP responses in ``avdesign.main``.
"""

from typing import Any


class TemplateEngineError(Exception):
    """Base class for errors raised by the template engine."""


class NotFoundError(TemplateEngineError):
    """A template, version, or referenced room does not exist."""

    def __init__(self, kind: str, identifier: Any):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class TemplateValidationError(TemplateEngineError):
    """Input rejected before any write was attempted."""


class ImmutableTemplateError(TemplateValidationError):
    """Attempt to modify a system-scope template."""

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"Template {template_id} is a system template and cannot be modified")


class VersionConflictError(TemplateEngineError):
    """The current-version pointer moved while a new version was being written."""

    def __init__(self, template_id: str, expected: int):
        self.template_id = template_id
        self.expected = expected
        super().__init__(
            f"Template {template_id} is no longer at version {expected}; reload and retry"
        )


class PartialApplyFailure(TemplateEngineError):
    """
    A multi-step apply failed after some entities were already created and
    those entities could not be (or were not) removed again.
    """

    def __init__(self, template_id: str, created: list[dict[str, str]], cause: BaseException):
        self.template_id = template_id
        self.created = created
        self.cause = cause
        super().__init__(
            f"Applying template {template_id} failed after creating "
            f"{len(created)} entit{'y' if len(created) == 1 else 'ies'}: {cause}"
        )
