"""
Usage Policy
============

Tier limits, credit charges and cost estimates for the two expensive
tiers: per-page vision fallback and caller-driven full OCR.

A limit of UNLIMITED (-1) disables that check.
"""

import math
from dataclasses import dataclass

from .models import VisionAllowance

UNLIMITED = -1


@dataclass(frozen=True)
class VisionLimits:
    monthly: int
    max_pages: int


@dataclass(frozen=True)
class OCRLimits:
    monthly_ocr: int
    credits_per_ocr: int
    max_pages: int


VISION_LIMITS: dict[str, VisionLimits] = {
    "free": VisionLimits(monthly=20, max_pages=10),
    "pro": VisionLimits(monthly=200, max_pages=30),
    "premium": VisionLimits(monthly=1000, max_pages=50),
    "enterprise": VisionLimits(monthly=UNLIMITED, max_pages=UNLIMITED),
}

CREDITS_PER_VISION_PAGE = 0.1

# Vision input is roughly 10k tokens per rendered page
VISION_TOKENS_PER_PAGE = 10_000
VISION_COST_PER_1M_TOKENS = 0.075

OCR_LIMITS: dict[str, OCRLimits] = {
    "free": OCRLimits(monthly_ocr=50, credits_per_ocr=1, max_pages=50),
    "custom": OCRLimits(monthly_ocr=UNLIMITED, credits_per_ocr=0, max_pages=UNLIMITED),
}

OCR_TOKENS_PER_PAGE = 2_000
OCR_INPUT_COST_PER_1M_TOKENS = 0.05
OCR_OUTPUT_COST_PER_1M_TOKENS = 0.40


def vision_limits_for(tier: str | None) -> VisionLimits:
    """Limits for a tier; unknown tiers get the free limits."""
    return VISION_LIMITS.get(tier or "free", VISION_LIMITS["free"])


def vision_credits(page_count: int, tier: str | None = "free") -> float:
    if tier == "enterprise":
        return 0.0
    return round(page_count * CREDITS_PER_VISION_PAGE, 4)


def check_vision_limits(
    tier: str | None,
    page_count: int,
    monthly_used: int = 0,
    credits_available: float | None = None,
) -> VisionAllowance:
    """
    Decide whether a vision request for page_count pages fits the tier.

    Args:
        tier: User tier (free, pro, premium, enterprise)
        page_count: Pages the request would escalate
        monthly_used: Vision pages already used this month
        credits_available: Remaining credits; None skips the credit check

    Returns:
        VisionAllowance with a reason when not allowed
    """
    limits = vision_limits_for(tier)

    if limits.monthly != UNLIMITED and monthly_used + page_count > limits.monthly:
        return VisionAllowance(
            allowed=False,
            reason=f"Monthly vision extraction limit exceeded ({monthly_used}/{limits.monthly})",
        )

    if limits.max_pages != UNLIMITED and page_count > limits.max_pages:
        return VisionAllowance(
            allowed=False,
            reason=f"Too many pages in single request. Maximum: {limits.max_pages}",
        )

    needed = vision_credits(page_count, tier)
    if credits_available is not None and needed > 0 and credits_available < needed:
        return VisionAllowance(
            allowed=False,
            reason=f"Insufficient credits for vision extraction (required {needed}, available {credits_available})",
        )

    return VisionAllowance(allowed=True)


def estimate_vision_cost(page_count: int) -> float:
    """Estimated USD cost of vision recognition for page_count pages."""
    total_tokens = page_count * VISION_TOKENS_PER_PAGE
    return total_tokens / 1_000_000 * VISION_COST_PER_1M_TOKENS


def calculate_ocr_credits(page_count: int, tier: str | None = "free") -> int:
    """Credits charged for full OCR: 1 up to 20 pages, 2 up to 50, then 1 per 50 pages."""
    if tier == "custom":
        return 0
    if page_count <= 20:
        return 1
    if page_count <= 50:
        return 2
    return math.ceil(page_count / 50)


def can_perform_ocr(current_count: int, tier: str | None, page_count: int) -> VisionAllowance:
    """Check the monthly OCR count and the page limit for a tier."""
    tier = tier or "free"
    limits = OCR_LIMITS.get(tier, OCR_LIMITS["free"])

    if limits.monthly_ocr != UNLIMITED and current_count >= limits.monthly_ocr:
        return VisionAllowance(
            allowed=False,
            reason=(
                f"Monthly OCR limit reached ({limits.monthly_ocr}). "
                "Contact us for a custom plan or wait until next month."
            ),
        )

    if limits.max_pages != UNLIMITED and page_count > limits.max_pages:
        return VisionAllowance(
            allowed=False,
            reason=(
                f"Document exceeds page limit ({limits.max_pages} pages for {tier} tier). "
                "Contact us for a custom plan."
            ),
        )

    return VisionAllowance(allowed=True)


def estimate_ocr_cost(page_count: int, tier: str | None = "free") -> dict[str, float]:
    """Credits, token count and USD estimate for full OCR of page_count pages."""
    tokens = page_count * OCR_TOKENS_PER_PAGE
    input_cost = tokens / 1_000_000 * OCR_INPUT_COST_PER_1M_TOKENS
    output_cost = tokens / 1_000_000 * OCR_OUTPUT_COST_PER_1M_TOKENS
    return {
        "credits": calculate_ocr_credits(page_count, tier),
        "estimated_tokens": tokens,
        "estimated_cost_usd": input_cost + output_cost,
    }
