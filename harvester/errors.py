"""
Harvest Errors
==============
Typed failures raised (or counted) by the harvesting core.

Failures local to one element or record are absorbed by the caller and only
show up in aggregate counters (``GatherStats``).  Failures that prevent a
whole operation propagate to the immediate caller as one of these types.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class HarvestError(Exception):
    """Base exception for the harvester."""

    def __init__(self, message: str, code: str = "HARVEST_ERROR",
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.context = context or {}


class SelectorInvalid(HarvestError):
    """A selector string could not be parsed."""

    def __init__(self, selector: str, reason: str = ""):
        super().__init__(
            f"Invalid selector {selector!r}" + (f": {reason}" if reason else ""),
            "SELECTOR_INVALID",
            {"selector": selector},
        )
        self.selector = selector


class ResolutionTimeout(HarvestError):
    """No qualifying match was found within the retry budget."""

    def __init__(self, selectors, attempts: int, elapsed: float):
        selectors = list(selectors)
        super().__init__(
            f"Failed to find selector after {attempts} attempts: {', '.join(selectors)}",
            "RESOLUTION_TIMEOUT",
            {"selectors": selectors, "attempts": attempts, "elapsed": elapsed},
        )
        self.selectors = selectors
        self.attempts = attempts
        self.elapsed = elapsed


class ExtractionSkipped(HarvestError):
    """A single node yielded no usable asset URL."""

    def __init__(self, reason: str, url: Optional[str] = None):
        super().__init__(reason, "EXTRACTION_SKIPPED", {"url": url})
        self.reason = reason
        self.url = url


class ResourceProbeFailed(HarvestError):
    """Natural dimensions of a resource could not be determined."""

    def __init__(self, url: str, reason: str = ""):
        super().__init__(
            f"Failed to load image {url}" + (f": {reason}" if reason else ""),
            "RESOURCE_PROBE_FAILED",
            {"url": url},
        )
        self.url = url


class ActuationFailed(HarvestError):
    """Clicking or otherwise advancing a control failed."""

    def __init__(self, message: str = "Element could not be activated",
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, "ACTUATION_FAILED", context)


class BatchItemFailed(HarvestError):
    """A worker invocation failed while ``continue_on_error`` was off."""

    def __init__(self, index: int, cause: BaseException):
        super().__init__(
            f"Batch item {index} failed: {cause}",
            "BATCH_ITEM_FAILED",
            {"index": index},
        )
        self.index = index
        self.cause = cause


class HarvestCancelled(HarvestError):
    """The operation was cancelled through its ``CancelToken``."""

    def __init__(self, message: str = "Operation cancelled",
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CANCELLED", context)
