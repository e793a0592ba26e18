"""
Manual category selection for uploaded photos.

There is no image model behind this step: "analysis" is a fixed delay after
which the full catalog is offered, and the user's choice becomes the result.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Tuple, Union

from schemas import AnalysisResult, Category, CategoryOption
from services.errors import ValidationError

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 10 * 1024 * 1024

CATEGORY_OPTIONS: List[CategoryOption] = [
    CategoryOption(
        value=Category.pothole,
        label="Pothole / Road Damage",
        description="Road surface damage, cracks, holes, or deterioration detected",
        severity="High",
        confidence=0.85,
        recommendations=[
            "Report to highway maintenance department",
            "Mark area for temporary safety measures",
            "Monitor for worsening conditions",
        ],
    ),
    CategoryOption(
        value=Category.traffic_signal,
        label="Traffic Signal / Traffic Light",
        description="Traffic light or signal control equipment detected",
        severity="Medium",
        confidence=0.82,
        recommendations=[
            "Report signal malfunction to traffic department",
            "Monitor for proper operation during peak hours",
            "Document timing and light sequence issues",
        ],
    ),
    CategoryOption(
        value=Category.road_sign,
        label="Road Sign / Warning Sign",
        description="Road signage, warning signs, or directional markers detected",
        severity="Medium",
        confidence=0.78,
        recommendations=[
            "Report damaged or obscured signage",
            "Check for proper visibility and positioning",
            "Ensure sign meets visibility standards",
        ],
    ),
    CategoryOption(
        value=Category.street_light,
        label="Street Light / Lighting",
        description="Street lighting infrastructure or lamp posts detected",
        severity="Low",
        confidence=0.75,
        recommendations=[
            "Report lighting outages to utilities department",
            "Check for proper illumination levels",
            "Schedule maintenance if flickering",
        ],
    ),
    CategoryOption(
        value=Category.waste_management,
        label="Waste / Garbage Issue",
        description="Waste collection, disposal, or litter issues detected",
        severity="Medium",
        confidence=0.73,
        recommendations=[
            "Contact waste management services",
            "Report overflowing containers",
            "Schedule additional pickup if needed",
        ],
    ),
    CategoryOption(
        value=Category.other,
        label="Other Infrastructure Issue",
        description="General infrastructure or maintenance issue detected",
        severity="Low",
        confidence=0.65,
        recommendations=[
            "Report to appropriate city department",
            "Monitor for changes in condition",
            "Take additional photos if needed",
        ],
    ),
]


def _index_catalog(options: List[CategoryOption]) -> Dict[str, CategoryOption]:
    index: Dict[str, CategoryOption] = {}
    for option in options:
        if option.value.value in index:
            raise RuntimeError(f"Duplicate category value in catalog: {option.value.value}")
        index[option.value.value] = option
    return index


# Fails at import time on a misconfigured catalog
CATALOG: Dict[str, CategoryOption] = _index_catalog(CATEGORY_OPTIONS)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def get_catalog() -> List[CategoryOption]:
    return list(CATEGORY_OPTIONS)


def validate_photo(content_type: str, size: int) -> None:
    """
    Check an uploaded photo before it is stored.

    Args:
        content_type: MIME type reported by the client
        size: Size of the file in bytes

    Raises:
        ValidationError: If the file is not an image or is too large
    """
    if not content_type or not content_type.startswith("image/"):
        raise ValidationError("Please select a valid image file.")
    if size <= 0:
        raise ValidationError("Please select a valid image file.")
    if size > MAX_IMAGE_BYTES:
        raise ValidationError("Image is too large. Max size: 10MB.")


def pending_result() -> AnalysisResult:
    """Result shown while the user has not chosen a category yet."""
    return AnalysisResult(
        category="Analyzing...",
        confidence=0,
        original_confidence=0,
        severity="Unknown",
        description="Please select the category that best matches your uploaded image.",
        recommendations=["Choose the appropriate category from the options below"],
        warnings=[],
        needs_review=True,
        human_review_required=True,
        is_manually_selected=False,
        timestamp=_now(),
    )


async def begin_analysis(delay: float = 1.0) -> Tuple[AnalysisResult, List[CategoryOption]]:
    """
    Pace the "analysis" step, then hand the catalog back for manual choice.

    Args:
        delay: Fixed wait in seconds

    Returns:
        The pending result and the full catalog
    """
    await asyncio.sleep(delay)
    return pending_result(), get_catalog()


def select_category(option: Union[CategoryOption, Category, str]) -> AnalysisResult:
    """
    Turn a manually chosen catalog entry into an analysis result.

    Args:
        option: Catalog entry, or its category value

    Returns:
        AnalysisResult with the entry's severity and confidence

    Raises:
        ValidationError: If the value is not in the catalog
    """
    if isinstance(option, CategoryOption):
        key = option.value.value
    elif isinstance(option, Category):
        key = option.value
    else:
        key = str(option)

    entry = CATALOG.get(key)
    if entry is None:
        raise ValidationError(f"Unknown category: {key}")

    logger.info("Category selected manually: %s", key)
    return AnalysisResult(
        category=entry.value.value,
        confidence=entry.confidence,
        original_confidence=entry.confidence,
        severity=entry.severity,
        description=entry.description,
        recommendations=list(entry.recommendations),
        warnings=[],
        needs_review=False,
        human_review_required=False,
        is_manually_selected=True,
        timestamp=_now(),
    )
