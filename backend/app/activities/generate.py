"""Generative design client — narrative, photo analysis, and renderings.

Claude writes the design narrative (looking at the property photo when one
was uploaded) and, best-effort, a structured analysis of the photo. Gemini
produces the images, trying an ordered list of strategies until one yields
at least one image reference:

1. ``edit_original`` (needs a photo): redraw only the yard in the uploaded photo.
2. ``standalone``: photorealistic rendering from a text description.

If the narrative call itself fails, the whole sequence is retried once with a
simplified, text-only brief before giving up with ``GenerationError``.
When the narrative succeeds but every image strategy fails, the result carries
no images unless ``require_images`` is set.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import Any, Protocol

import anthropic
import structlog
from google import genai
from google.genai import types

from app.config import Settings
from app.errors import ConfigurationError, GenerationError
from app.models.contracts import DesignParams, GenerationResult
from app.utils.gemini import IMAGE_CONFIG, extract_image_refs, get_client
from app.utils.http import download_image

log = structlog.get_logger("generate")

NARRATIVE_MAX_TOKENS = 1500
ANALYSIS_MAX_TOKENS = 1024
THESIS_EXCERPT_CHARS = 1500

SYSTEM_PROMPT = (
    "You are an experienced landscape designer creating professional proposals. "
    "Provide detailed, practical advice that sounds authoritative and knowledgeable."
)

_SUN_LABELS = {
    "full-sun": "full sun (6+ hours of direct sun)",
    "partial-sun": "partial sun (3-6 hours of direct sun)",
    "shade": "shade (less than 3 hours of direct sun)",
}

_RENDERING_VARIANTS: tuple[str, ...] = (
    "Viewpoint: eye-level, standing at the edge of the yard looking toward the house.",
    "Viewpoint: elevated three-quarter view showing the full layout of beds, paths "
    "and planting groups.",
)

ANALYZE_PROPERTY_TOOL: dict[str, Any] = {
    "name": "record_property_analysis",
    "description": (
        "Record the visible characteristics of the property photo. "
        "Fill every field you can determine; leave others empty."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "property_type": {
                "type": "string",
                "description": "Front yard, backyard, side yard, courtyard, etc.",
            },
            "existing_structures": {
                "type": "array",
                "items": {"type": "string"},
                "description": "House, fences, walls, decks, sheds that must stay unchanged",
            },
            "existing_vegetation": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Trees, shrubs, lawn and beds currently visible",
            },
            "hardscape": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Paths, patios, driveways, edging and their materials",
            },
            "terrain": {
                "type": "string",
                "description": "Slope and grade (flat, gentle slope, terraced...)",
            },
            "light_conditions": {
                "type": "string",
                "description": "Apparent sun and shade patterns",
            },
            "summary": {
                "type": "string",
                "description": "Two or three sentences describing the space for a renderer",
            },
        },
        "required": ["summary"],
    },
}


# --- Prompts ---


def _site_description(params: DesignParams) -> str:
    return (
        f"a {params.square_footage:,} sq ft area with {_SUN_LABELS[params.sun_exposure]} "
        f"in climate zone {params.climate_zone}"
    )


def build_design_brief(params: DesignParams, *, with_photo: bool = False) -> str:
    """Full design brief sent to the narrative model."""
    parts = [
        f"Create a professional landscape design proposal for {_site_description(params)}. "
        f"The design style should be {params.design_style}."
    ]
    if params.budget:
        parts.append(
            f"The client's budget is ${params.budget:,.0f}; keep recommendations within it."
        )
    if params.notes:
        parts.append(f"Additional requirements: {params.notes}")
    if with_photo:
        parts.append(
            "The attached photo shows the existing property. Ground your recommendations in "
            "what is visible: keep existing structures and work with the current layout."
        )
    parts.append(
        "Please provide:\n"
        "1. A detailed design thesis explaining the design approach and plant selections\n"
        "2. A comprehensive materials list with quantities and estimated costs\n"
        "3. Design recommendations for this specific climate and sun exposure\n\n"
        "Make it sound professional and experienced, as if written by a landscape designer "
        "with 20+ years of experience."
    )
    return "\n\n".join(parts)


def build_simplified_brief(params: DesignParams) -> str:
    """Shorter, text-only brief used for the single narrative retry."""
    return (
        f"Write a concise landscape design proposal for a {params.design_style} garden "
        f"covering {_site_description(params)}. Describe the design approach, the main "
        "plants, and the materials needed."
    )


def build_edit_prompt(params: DesignParams, design_thesis: str) -> str:
    excerpt = design_thesis[:THESIS_EXCERPT_CHARS]
    return (
        "Edit this photo of the property to show the proposed landscape design.\n"
        "Modify ONLY the landscaping and yard areas: lawn, planting beds, plants, trees, "
        "mulch, paths and garden hardscape.\n"
        "Do NOT change the house, buildings, fences, windows, roofs or any other existing "
        "structure. Keep the camera angle, perspective and lighting identical.\n\n"
        f"Style: {params.design_style}. Sun exposure: {_SUN_LABELS[params.sun_exposure]}. "
        f"Climate zone: {params.climate_zone}.\n\n"
        f"Designer's proposal:\n{excerpt}"
    )


def build_rendering_prompt(
    params: DesignParams, image_analysis: str = "", variant: str = ""
) -> str:
    parts = [
        f"Professional landscape design rendering of a {params.design_style} style garden "
        f"for {_site_description(params)}. Include appropriate plants, hardscaping, and "
        "design elements. High quality, photorealistic, professional landscape design "
        "visualization."
    ]
    if image_analysis:
        parts.append(f"The existing property:\n{image_analysis}")
    if params.notes:
        parts.append(f"Client notes: {params.notes}")
    if variant:
        parts.append(variant)
    return "\n\n".join(parts)


def format_property_analysis(data: dict[str, Any]) -> str:
    """Flatten the analysis tool payload into the text stored on the project."""
    lines: list[str] = []
    labels = (
        ("property_type", "Property type"),
        ("existing_structures", "Existing structures"),
        ("existing_vegetation", "Existing vegetation"),
        ("hardscape", "Hardscape"),
        ("terrain", "Terrain"),
        ("light_conditions", "Light"),
    )
    for key, label in labels:
        value = data.get(key)
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value if v)
        if value:
            lines.append(f"{label}: {value}")
    summary = data.get("summary")
    if summary:
        lines.append(f"Summary: {summary}")
    return "\n".join(lines)


def _message_text(response: anthropic.types.Message) -> str:
    return "".join(block.text for block in response.content if block.type == "text").strip()


def _tool_input(response: anthropic.types.Message, tool_name: str) -> dict[str, Any]:
    for block in response.content:
        if block.type == "tool_use" and block.name == tool_name:
            return dict(block.input) if isinstance(block.input, dict) else {}
    return {}


# --- Image strategies ---


@dataclass(frozen=True)
class RenderContext:
    params: DesignParams
    original_image_url: str | None = None
    design_thesis: str = ""
    image_analysis: str = ""


class ImageStrategy(Protocol):
    name: str

    def applies(self, ctx: RenderContext) -> bool: ...

    async def render(self, client: GenerativeDesignClient, ctx: RenderContext) -> list[str]: ...


@dataclass(frozen=True)
class EditOriginalPhoto:
    name: str = "edit_original"

    def applies(self, ctx: RenderContext) -> bool:
        return bool(ctx.original_image_url)

    async def render(self, client: GenerativeDesignClient, ctx: RenderContext) -> list[str]:
        return await client.edit_original(ctx)


@dataclass(frozen=True)
class StandaloneRendering:
    name: str = "standalone"

    def applies(self, ctx: RenderContext) -> bool:
        return True

    async def render(self, client: GenerativeDesignClient, ctx: RenderContext) -> list[str]:
        return await client.render_standalone(ctx)


DEFAULT_IMAGE_STRATEGIES: tuple[ImageStrategy, ...] = (EditOriginalPhoto(), StandaloneRendering())


# --- Client ---


class GenerativeDesignClient:
    def __init__(
        self,
        anthropic_client: anthropic.AsyncAnthropic,
        gemini_client: genai.Client,
        *,
        narrative_model: str,
        image_model: str,
        timeout_seconds: float = 150.0,
        image_count: int = 2,
        require_images: bool = False,
        image_strategies: tuple[ImageStrategy, ...] = DEFAULT_IMAGE_STRATEGIES,
    ) -> None:
        self._anthropic = anthropic_client
        self._gemini = gemini_client
        self.narrative_model = narrative_model
        self.image_model = image_model
        self.timeout_seconds = timeout_seconds
        self.image_count = max(1, image_count)
        self.require_images = require_images
        self.image_strategies = image_strategies

    @classmethod
    def from_settings(cls, settings: Settings) -> GenerativeDesignClient:
        missing = [
            name
            for name, value in (
                ("ANTHROPIC_API_KEY", settings.anthropic_api_key),
                ("GOOGLE_AI_API_KEY", settings.google_ai_api_key),
            )
            if not value
        ]
        if missing:
            log.error("generation_not_configured", missing=missing)
            raise ConfigurationError(missing)
        return cls(
            anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key),
            get_client(settings.google_ai_api_key),
            narrative_model=settings.narrative_model,
            image_model=settings.gemini_image_model,
            timeout_seconds=settings.generation_timeout_seconds,
            image_count=settings.generated_image_count,
            require_images=settings.require_generated_images,
        )

    async def generate(
        self, params: DesignParams, original_image_url: str | None = None
    ) -> GenerationResult:
        """Narrative + renderings for one project.

        Raises GenerationError(stage="narrative") when both narrative attempts
        fail, or GenerationError(stage="image") when images are required and
        every strategy failed.
        """
        attempts = (
            (build_design_brief(params, with_photo=bool(original_image_url)), True),
            (build_simplified_brief(params), False),
        )
        # One analysis per request, shared by the retry if the first narrative fails
        analysis_task = (
            asyncio.create_task(self.analyze_image(original_image_url))
            if original_image_url
            else None
        )
        last_error: GenerationError | None = None
        try:
            for attempt, (brief, image_aware) in enumerate(attempts):
                try:
                    return await self._run_sequence(
                        params,
                        brief,
                        original_image_url,
                        image_aware=image_aware,
                        analysis_task=analysis_task,
                    )
                except GenerationError as exc:
                    if exc.stage != "narrative":
                        raise
                    last_error = exc
                    log.warning("narrative_attempt_failed", attempt=attempt, error=exc.detail)
        finally:
            if analysis_task is not None:
                analysis_task.cancel()
        assert last_error is not None
        raise last_error

    @staticmethod
    async def _settled_analysis(task: asyncio.Task[str] | None) -> str:
        if task is None:
            return ""
        try:
            return await task
        except Exception as exc:
            log.warning("image_analysis_failed", error_type=type(exc).__name__)
            return ""

    async def _run_sequence(
        self,
        params: DesignParams,
        brief: str,
        original_image_url: str | None,
        *,
        image_aware: bool,
        analysis_task: asyncio.Task[str] | None = None,
    ) -> GenerationResult:
        ctx = RenderContext(params=params, original_image_url=original_image_url)

        if original_image_url and image_aware:
            thesis_result, analysis = await asyncio.gather(
                self.write_narrative(brief, original_image_url),
                self._settled_analysis(analysis_task),
                return_exceptions=True,
            )
            if isinstance(thesis_result, BaseException):
                raise thesis_result
            if isinstance(analysis, BaseException):
                raise analysis
            thesis = thesis_result
            images = await self._images_or_empty(
                replace(ctx, design_thesis=thesis, image_analysis=analysis)
            )
            return GenerationResult(
                design_thesis=thesis, generated_images=images, image_analysis=analysis
            )

        if original_image_url:
            # Degraded retry: text-only narrative; the renderings keep any analysis already made
            thesis = await self.write_narrative(brief)
            analysis = await self._settled_analysis(analysis_task)
            images = await self._images_or_empty(
                replace(ctx, design_thesis=thesis, image_analysis=analysis)
            )
            return GenerationResult(design_thesis=thesis, generated_images=images)

        # No photo: narrative and rendering don't depend on each other
        thesis_result, images_result = await asyncio.gather(
            self.write_narrative(brief),
            self._images_or_empty(ctx),
            return_exceptions=True,
        )
        if isinstance(thesis_result, BaseException):
            raise thesis_result
        if isinstance(images_result, BaseException):
            raise images_result
        return GenerationResult(design_thesis=thesis_result, generated_images=images_result)

    async def write_narrative(self, brief: str, image_url: str | None = None) -> str:
        content: list[dict[str, Any]] = []
        if image_url:
            content.append({"type": "image", "source": {"type": "url", "url": image_url}})
        content.append({"type": "text", "text": brief})

        log.info("narrative_start", model=self.narrative_model, with_image=bool(image_url))
        try:
            async with asyncio.timeout(self.timeout_seconds):
                response = await self._anthropic.messages.create(
                    model=self.narrative_model,
                    max_tokens=NARRATIVE_MAX_TOKENS,
                    system=SYSTEM_PROMPT,
                    messages=[{"role": "user", "content": content}],
                )
        except anthropic.APIStatusError as exc:
            log.error("narrative_api_error", status=exc.status_code)
            raise GenerationError("narrative", exc) from exc
        except (anthropic.APIError, TimeoutError) as exc:
            log.error("narrative_failed", error_type=type(exc).__name__)
            raise GenerationError("narrative", exc) from exc

        text = _message_text(response)
        if not text:
            raise GenerationError("narrative", "model returned an empty narrative")
        log.info("narrative_complete", chars=len(text))
        return text

    async def analyze_image(self, image_url: str) -> str:
        """Structured description of the photo. Returns "" on any failure."""
        try:
            async with asyncio.timeout(self.timeout_seconds):
                response = await self._anthropic.messages.create(  # type: ignore[call-overload]
                    model=self.narrative_model,
                    max_tokens=ANALYSIS_MAX_TOKENS,
                    tools=[ANALYZE_PROPERTY_TOOL],
                    tool_choice={"type": "tool", "name": ANALYZE_PROPERTY_TOOL["name"]},
                    messages=[
                        {
                            "role": "user",
                            "content": [
                                {"type": "image", "source": {"type": "url", "url": image_url}},
                                {
                                    "type": "text",
                                    "text": "Describe the visual characteristics of this "
                                    "property for a landscape designer.",
                                },
                            ],
                        }
                    ],
                )
        except (anthropic.APIError, TimeoutError) as exc:
            log.warning("image_analysis_failed", error_type=type(exc).__name__, error=str(exc))
            return ""

        data = _tool_input(response, ANALYZE_PROPERTY_TOOL["name"])
        if not data:
            log.warning("image_analysis_no_tool_call")
            return ""
        return format_property_analysis(data)

    async def render_images(self, ctx: RenderContext) -> list[str]:
        """Try each strategy in order; the first non-empty result wins."""
        failures: list[str] = []
        for strategy in self.image_strategies:
            if not strategy.applies(ctx):
                continue
            try:
                refs = await strategy.render(self, ctx)
            except Exception as exc:
                log.warning(
                    "image_strategy_failed",
                    strategy=strategy.name,
                    error_type=type(exc).__name__,
                    error=str(exc)[:200],
                )
                failures.append(f"{strategy.name}: {type(exc).__name__}: {exc}")
                continue
            refs = [ref for ref in refs if ref]
            if refs:
                log.info("image_strategy_succeeded", strategy=strategy.name, count=len(refs))
                return refs
            log.warning("image_strategy_empty", strategy=strategy.name)
            failures.append(f"{strategy.name}: no images returned")
        raise GenerationError("image", "; ".join(failures) or "no applicable image strategy")

    async def _images_or_empty(self, ctx: RenderContext) -> list[str]:
        try:
            return await self.render_images(ctx)
        except GenerationError as exc:
            if self.require_images:
                raise
            log.warning("image_generation_exhausted", error=exc.detail)
            return []

    async def _generate_content(self, contents: list[Any]) -> types.GenerateContentResponse:
        # google-genai's sync client, run in the thread pool with a hard timeout
        async with asyncio.timeout(self.timeout_seconds):
            return await asyncio.to_thread(
                self._gemini.models.generate_content,
                model=self.image_model,
                contents=contents,
                config=IMAGE_CONFIG,
            )

    async def edit_original(self, ctx: RenderContext) -> list[str]:
        assert ctx.original_image_url is not None
        photo = await download_image(ctx.original_image_url)
        response = await self._generate_content(
            [photo, build_edit_prompt(ctx.params, ctx.design_thesis)]
        )
        return extract_image_refs(response)

    async def render_standalone(self, ctx: RenderContext) -> list[str]:
        prompts = [
            build_rendering_prompt(
                ctx.params,
                ctx.image_analysis,
                _RENDERING_VARIANTS[i % len(_RENDERING_VARIANTS)],
            )
            for i in range(self.image_count)
        ]
        responses = await asyncio.gather(
            *(self._generate_content([prompt]) for prompt in prompts),
            return_exceptions=True,
        )
        refs: list[str] = []
        errors: list[BaseException] = []
        for index, response in enumerate(responses):
            if isinstance(response, BaseException):
                log.warning("standalone_render_failed", option=index, error=str(response)[:200])
                errors.append(response)
                continue
            refs.extend(extract_image_refs(response))
        if not refs and errors:
            raise errors[0]
        return refs
