"""Tests for business profiling and summaries."""

from app.services.business_profiling import (
    COMPREHENSIVE_SECTIONS,
    PLACEHOLDER_TEXT,
    BusinessProfile,
    BusinessProfilingService,
    build_profile_prompt,
    parse_profile_sections,
)
from app.services.content_acquisition import AcquiredContent

NARRATIVE = """Here is the analysis.

**Industry:** Outdoor recreation retail

**Product Focus**: Tents, backpacks
- Ultralight shelters

**Target Market**
Backpackers and thru-hikers ##

**Key Differentiators:** In-house designs
"""


def test_parse_profile_sections() -> None:
    sections = parse_profile_sections(NARRATIVE)

    assert list(sections) == [
        "Industry",
        "Product Focus",
        "Target Market",
        "Key Differentiators",
    ]
    assert sections["Industry"] == "Outdoor recreation retail"
    assert sections["Product Focus"] == "Tents, backpacks\n- Ultralight shelters"
    assert sections["Target Market"] == "Backpackers and thru-hikers"


def test_parse_without_headers() -> None:
    assert parse_profile_sections("Just some prose.") == {}


def test_comprehensive_prompt_adds_price_range() -> None:
    prompt = build_profile_prompt("Trail Co sells tents", comprehensive=True)

    assert 'Analyze this business: "Trail Co sells tents"' in prompt
    for section in COMPREHENSIVE_SECTIONS:
        assert f"**{section}**" in prompt
    assert "**Price Range**" not in build_profile_prompt("x", comprehensive=False)


def test_placeholder() -> None:
    profile = BusinessProfile.placeholder()

    assert profile.text == PLACEHOLDER_TEXT
    assert profile.available is False
    assert profile.sections == {}


class TestProfile:
    async def test_generates_profile(self, make_llm, make_completion) -> None:
        llm = make_llm(make_completion(NARRATIVE))
        service = BusinessProfilingService(llm)
        content = AcquiredContent(url="https://trailco.com", text="a" * 5000)

        profile = await service.profile(content, comprehensive=False, timeout=12)

        assert profile.available is True
        assert profile.sections["Key Differentiators"] == "In-house designs"
        kwargs = llm.complete.call_args.kwargs
        assert kwargs["temperature"] == 0.1
        assert kwargs["timeout"] == 12
        # Fast mode sends at most 1500 characters of content
        assert "a" * 1500 in kwargs["user_prompt"]
        assert "a" * 1501 not in kwargs["user_prompt"]

    async def test_comprehensive_uses_structured_content(self, make_llm, make_completion) -> None:
        llm = make_llm(make_completion(NARRATIVE))
        content = AcquiredContent(
            url="https://trailco.com",
            structured={
                "business_name": "Trail Co",
                "products": ["Tents", "Packs"],
                "shipping_info": {"has_free_shipping": True},
            },
            strategy="structured",
        )

        await BusinessProfilingService(llm).profile(content, comprehensive=True)

        kwargs = llm.complete.call_args.kwargs
        assert kwargs["temperature"] == 0.7
        assert "Business Name: Trail Co" in kwargs["user_prompt"]
        assert "Products: Tents, Packs" in kwargs["user_prompt"]

    async def test_failure_returns_placeholder(self, make_llm, make_completion) -> None:
        service = BusinessProfilingService(make_llm(make_completion(error="timeout")))

        profile = await service.profile(AcquiredContent(url="u", text="x"))

        assert profile == BusinessProfile.placeholder()

    async def test_blank_response_returns_placeholder(self, make_llm, make_completion) -> None:
        service = BusinessProfilingService(make_llm(make_completion("   ")))

        profile = await service.profile(AcquiredContent(url="u", text="x"))

        assert profile.available is False


class TestSummarize:
    async def test_summary(self, make_llm, make_completion) -> None:
        service = BusinessProfilingService(make_llm(make_completion(" Trail Co sells tents. ")))

        summary = await service.summarize(BusinessProfile(text=NARRATIVE))

        assert summary == "Trail Co sells tents."

    async def test_placeholder_skips_llm(self, make_llm) -> None:
        llm = make_llm()

        assert await BusinessProfilingService(llm).summarize(BusinessProfile.placeholder()) is None
        llm.complete.assert_not_called()

    async def test_failure_returns_none(self, make_llm, make_completion) -> None:
        service = BusinessProfilingService(make_llm(make_completion(error="down")))

        assert await service.summarize(BusinessProfile(text=NARRATIVE)) is None
