"""Business profiling from acquired site content.

Produces a BusinessProfile narrative with bolded section headers
(Industry, Product Focus, Target Market, Key Differentiators, plus Price
Range in comprehensive mode) and, in fast mode, a short summary.

Profiling never raises: an LLM failure yields BusinessProfile.placeholder()
and the pipeline continues with reduced fidelity.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field

from app.core.logging import get_logger, pipeline_logger
from app.integrations.openai import OpenAIClient
from app.services.content_acquisition import AcquiredContent
from app.services.errors import ProfilingUnavailable

logger = get_logger(__name__)

PLACEHOLDER_TEXT = "Analysis not available"

FAST_CONTENT_LIMIT = 1500
COMPREHENSIVE_CONTENT_LIMIT = 3000

FAST_SECTIONS = ["Industry", "Product Focus", "Target Market", "Key Differentiators"]
COMPREHENSIVE_SECTIONS = [*FAST_SECTIONS, "Price Range"]

_SECTION_GUIDANCE: dict[str, str] = {
    "Industry": "The specific industry or sector they operate in",
    "Product Focus": "Key product categories and the products they focus on",
    "Target Market": "Primary demographics, customer segments and positioning",
    "Key Differentiators": "Unique selling points and competitive advantages",
    "Price Range": "Typical price points and pricing tier relative to the market",
}

# Matches "**Header:**", "**Header**:" and "**Header**"
_HEADER_PATTERN = re.compile(r"\*\*\s*([^*\n]+?)\s*:?\s*\*\*\s*:?")


@dataclass(frozen=True)
class BusinessProfile:
    """Narrative business profile of the analyzed site."""

    text: str
    summary: str | None = None
    sections: Mapping[str, str] = field(default_factory=dict)
    available: bool = True

    @classmethod
    def placeholder(cls) -> "BusinessProfile":
        """Profile used when no narrative could be generated."""
        return cls(text=PLACEHOLDER_TEXT, available=False)


def parse_profile_sections(text: str) -> dict[str, str]:
    """Split a profile narrative on its bolded headers.

    Text before the first header is dropped. Bodies are stripped of
    surrounding whitespace and markdown heading markers.
    """
    sections: dict[str, str] = {}
    matches = list(_HEADER_PATTERN.finditer(text))
    for index, match in enumerate(matches):
        end = matches[index + 1].start() if index + 1 < len(matches) else len(text)
        body = text[match.end() : end].strip().rstrip("#").strip()
        sections[match.group(1).strip()] = body
    return sections


def build_profile_prompt(content_text: str, comprehensive: bool) -> str:
    sections = COMPREHENSIVE_SECTIONS if comprehensive else FAST_SECTIONS
    section_lines = "\n".join(
        f"**{name}**: {_SECTION_GUIDANCE[name]}" for name in sections
    )
    return (
        f'Analyze this business: "{content_text}"\n\n'
        "Provide an analysis with these bolded section headers:\n\n"
        f"{section_lines}\n\n"
        "Format with clear headers and bullet points. Be comprehensive but concise."
    )


class BusinessProfilingService:
    """Generates business profiles with a chat completion client."""

    def __init__(self, llm: OpenAIClient) -> None:
        self._llm = llm

    async def profile(
        self,
        content: AcquiredContent,
        comprehensive: bool = False,
        timeout: float | None = None,
    ) -> BusinessProfile:
        """Generate the business profile narrative.

        Args:
            content: Acquired primary-site content
            comprehensive: Adds the Price Range section and raises temperature
            timeout: Per-request timeout in seconds

        Returns:
            BusinessProfile, or the placeholder when the LLM call fails
        """
        limit = COMPREHENSIVE_CONTENT_LIMIT if comprehensive else FAST_CONTENT_LIMIT
        prompt = build_profile_prompt(content.as_prompt_text(limit), comprehensive)

        result = await self._llm.complete(
            user_prompt=prompt,
            max_tokens=800,
            temperature=0.7 if comprehensive else 0.1,
            timeout=timeout,
        )
        if not result.success or not (result.text or "").strip():
            pipeline_logger.stage_degraded(
                "profiling",
                str(ProfilingUnavailable(result.error or "Empty profile response")),
            )
            return BusinessProfile.placeholder()

        text = result.text.strip()
        sections = parse_profile_sections(text)
        logger.debug(
            "Business profile generated",
            extra={"section_count": len(sections), "text_length": len(text)},
        )
        return BusinessProfile(text=text, sections=sections)

    async def summarize(
        self, profile: BusinessProfile, timeout: float | None = None
    ) -> str | None:
        """Condense a profile into a 2-3 sentence summary.

        Returns:
            The summary, or None when the profile is a placeholder or
            the LLM call fails
        """
        if not profile.available:
            return None

        prompt = (
            f'Based on this analysis: "{profile.text}"\n\n'
            "Create a condensed 2-3 sentence business summary focusing on the "
            "industry, the main products or services, and the key competitive "
            "advantage. Keep it concise and informative."
        )
        result = await self._llm.complete(
            user_prompt=prompt,
            max_tokens=200,
            temperature=0.1,
            timeout=timeout,
        )
        if not result.success:
            pipeline_logger.stage_degraded(
                "summary", result.error or "Summary call failed"
            )
            return None
        return (result.text or "").strip() or None
