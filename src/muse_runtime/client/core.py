"""
Core client implementation.

MuseClient composes the orchestration primitives per use case: every
backend call is admitted by the shared ConcurrencyLimiter and wrapped by
the retry executor; streamed reasoning goes through the TagParser and
video jobs through the poller.
"""

from __future__ import annotations

import random
import re
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, TypeVar

from muse_runtime.client.config import ModelConfig
from muse_runtime.client.response import ImageResult, RefinedPrompt, SocialCopy, VideoResult
from muse_runtime.errors import (
    CredentialError,
    ErrorClass,
    MuseError,
    OperationCancelledError,
    ValidationError,
    classify,
)
from muse_runtime.pipeline import (
    PROMPT_CLOSE,
    PROMPT_OPEN,
    THOUGHT_CLOSE,
    THOUGHT_OPEN,
    TagParser,
    extract_section,
    parse_stream,
)
from muse_runtime.resilience import (
    ConcurrencyLimiter,
    LimiterConfig,
    PollerConfig,
    RetryConfig,
    poll_until_done,
    with_retry,
)
from muse_runtime.telemetry import get_logger, operation_context
from muse_runtime.transport import (
    GeminiTransport,
    resolve_api_key,
    response_inline_data,
    response_text,
)
from muse_runtime.types import LongRunningOperation, ParserEvent

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from muse_runtime.resilience import CancelToken
    from muse_runtime.transport import GenerativeBackend

T = TypeVar("T")

logger = get_logger("muse_runtime.client")

THINKING_PLACEHOLDER = "Initializing creative neural pathways..."
THOUGHT_FALLBACK = "Analyzing creative parameters..."
DISRUPTION_MESSAGE = "Neural pathway disruption detected. Initiating fallback protocols..."
BYPASS_THOUGHT = (
    "Bypassing logic circuits. Direct creative uplink established. "
    "Proceeding with raw interpretation."
)
INSPIRATION_FALLBACK = "Nebula Glitch Phantom of the Void"
DEFAULT_VIDEO_PROMPT = "Cinematic movement, slow motion, high quality"

DIRECTOR_INSTRUCTION = (
    "You are an AI art director. First write your reasoning wrapped in "
    f"{THOUGHT_OPEN}...{THOUGHT_CLOSE} (40-60 words), then the final image prompt "
    f"wrapped in {PROMPT_OPEN}...{PROMPT_CLOSE} as comma-separated visual descriptors."
)

INSPIRATION_THEMES = (
    "Cyberpunk Glitch", "Organic Horror", "Ethereal Dreamscape", "Retro Vaporwave",
    "Steampunk Gear", "Cosmic Nebula", "Abstract Geometric", "Underwater Bioluminescence",
    "Neon Noir", "Ancient Ruins", "Liquid Metal", "Crystal Prism",
)

_DATA_URL = re.compile(r"^data:(.+?);base64,(.+)$", re.DOTALL)


def _text_payload(text: str, **generation_config: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": text}]}]}
    if generation_config:
        payload["generationConfig"] = generation_config
    return payload


def _video_uri(response: dict[str, Any] | None) -> str | None:
    """Locate the first video URI in a finished job's response."""
    if not response:
        return None
    samples = (
        response.get("generatedVideos")
        or (response.get("generateVideoResponse") or {}).get("generatedSamples")
        or []
    )
    for sample in samples:
        uri = (sample.get("video") or {}).get("uri") if isinstance(sample, dict) else None
        if uri:
            return uri
    return None


class MuseClient:
    """Client for the generative backend.

    The limiter passed in (or created here) is the client's admission gate
    for its whole lifetime; share one client per process rather than
    creating one per request.

    Example:
        >>> async with MuseClient(api_key="AIza...") as client:
        ...     refined = await client.refine_prompt("a cat", "cyberpunk")
        ...     image = await client.generate_image(refined.refined_prompt)
    """

    def __init__(
        self,
        backend: GenerativeBackend | None = None,
        *,
        api_key: str | None = None,
        limiter: ConcurrencyLimiter | None = None,
        retry_config: RetryConfig | None = None,
        poller_config: PollerConfig | None = None,
        models: ModelConfig | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            backend: Backend implementation; a GeminiTransport is created on
                first use when omitted
            api_key: Explicit credential (falls back to environment)
            limiter: Shared admission gate
            retry_config: Retry budget for every backend call
            poller_config: Poll interval for long-running jobs
            models: Model identifiers per operation
        """
        self._api_key = resolve_api_key(api_key)
        self._backend = backend
        self._owns_backend = backend is None
        self._limiter = limiter or ConcurrencyLimiter(LimiterConfig.from_env())
        self._retry_config = retry_config or RetryConfig.from_env()
        self._poller_config = poller_config or PollerConfig.from_env()
        self._models = models or ModelConfig.from_env()

    @property
    def limiter(self) -> ConcurrencyLimiter:
        return self._limiter

    @property
    def models(self) -> ModelConfig:
        return self._models

    @property
    def has_credential(self) -> bool:
        return bool(self._api_key)

    def _require_backend(self) -> GenerativeBackend:
        """Check the credential, then return the backend.

        Raises:
            CredentialError: Before any backend interaction when no key is set
        """
        if not self._api_key:
            raise CredentialError()
        if self._backend is None:
            self._backend = GeminiTransport(api_key=self._api_key)
        return self._backend

    async def _call(
        self,
        operation: Callable[[], Awaitable[T]],
        cancel_token: CancelToken | None = None,
    ) -> T:
        async with self._limiter.slot():
            return await with_retry(
                operation,
                config=self._retry_config,
                cancel_token=cancel_token,
            )

    async def refine_prompt(
        self,
        raw_prompt: str,
        style: str,
        on_thought: Callable[[ParserEvent], Any] | None = None,
        *,
        cancel_token: CancelToken | None = None,
    ) -> RefinedPrompt:
        """Stream the director's reasoning and return the refined prompt.

        ``on_thought`` receives a provisional event first, then a live
        preview of the THOUGHT section each time it grows, then the final
        thought. A stream that fails part-way is restarted from scratch.
        When the backend cannot be reached the raw prompt is used.
        Exceptions raised by ``on_thought`` are logged and ignored.

        Raises:
            CredentialError: If no credential is configured
            OperationCancelledError: If cancelled
        """
        backend = self._require_backend()
        model = self._models.text
        payload = _text_payload(
            f'User Prompt: "{raw_prompt}". Style Context: "{style or "Artistic, high quality"}".',
            temperature=0.8,
            thinkingConfig={"thinkingBudget": 2048},
        )
        payload["systemInstruction"] = {"parts": [{"text": DIRECTOR_INSTRUCTION}]}

        def emit(event: ParserEvent) -> None:
            if on_thought is None:
                return
            try:
                on_thought(event)
            except Exception:
                logger.exception("on_thought callback failed")

        async def stream_and_collect() -> str:
            parser = TagParser(THOUGHT_OPEN, THOUGHT_CLOSE)
            async for event in parse_stream(backend.invoke_stream(model, payload), parser):
                emit(event)
            return parser.buffer

        with operation_context("refine_prompt", model):
            emit(ParserEvent(content=THINKING_PLACEHOLDER, is_complete=False))
            try:
                full_text = await self._call(stream_and_collect, cancel_token)
            except OperationCancelledError:
                raise
            except Exception:
                logger.exception("Agent reasoning failed, using raw prompt")
                emit(ParserEvent(content=DISRUPTION_MESSAGE, is_complete=True))
                return RefinedPrompt(
                    thought=BYPASS_THOUGHT,
                    refined_prompt=f"{raw_prompt} {style}",
                    fallback=True,
                )

            thought = extract_section(full_text, THOUGHT_OPEN, THOUGHT_CLOSE, THOUGHT_FALLBACK)
            refined = extract_section(
                full_text, PROMPT_OPEN, PROMPT_CLOSE, f"{raw_prompt}, {style}"
            )
            emit(ParserEvent(content=thought, is_complete=True))
            return RefinedPrompt(thought=thought, refined_prompt=refined)

    async def generate_inspiration(
        self,
        research_context: list[str] | None = None,
        *,
        cancel_token: CancelToken | None = None,
    ) -> str:
        """Generate a short, evocative art prompt on a random theme."""
        backend = self._require_backend()
        model = self._models.text

        theme = random.choice(INSPIRATION_THEMES)
        context = ""
        if research_context:
            context = "\nContext:\n" + "\n".join(research_context)
        payload = _text_payload(
            f"Create a unique, cryptic art prompt (10-15 words) on the theme '{theme}'."
            f"{context}\nOutput ONLY the words.",
            temperature=1.4,
            topP=0.95,
            topK=40,
            maxOutputTokens=100,
        )

        with operation_context("generate_inspiration", model):
            try:
                body = await self._call(lambda: backend.invoke(model, payload), cancel_token)
            except Exception as e:
                if classify(e) is ErrorClass.NETWORK_FAILURE:
                    logger.warning("Inspiration failed: backend unreachable", error=str(e))
                else:
                    logger.exception("Inspiration failed")
                raise
            return response_text(body).strip() or INSPIRATION_FALLBACK

    async def generate_image(
        self,
        prompt: str,
        *,
        cancel_token: CancelToken | None = None,
    ) -> ImageResult:
        """Generate a square image for ``prompt``.

        Raises:
            MuseError: If the model returned no image data
        """
        backend = self._require_backend()
        model = self._models.image
        payload = _text_payload(prompt, imageConfig={"aspectRatio": "1:1"})

        with operation_context("generate_image", model):
            try:
                body = await self._call(lambda: backend.invoke(model, payload), cancel_token)
                inline = response_inline_data(body)
                if inline is None:
                    raise MuseError("Model returned no image data")
            except Exception:
                logger.exception("Image generation failed")
                raise

            mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
            return ImageResult(
                data=f"data:{mime_type};base64,{inline['data']}",
                source=model,
            )

    async def generate_video(
        self,
        image_data_url: str,
        prompt: str = "",
        *,
        cancel_token: CancelToken | None = None,
    ) -> VideoResult:
        """Animate an image into a short video.

        Starts a long-running job, polls it until done, then downloads the
        produced asset. Each backend call takes its own limiter slot, so
        a job being polled does not hold a slot between polls.

        Raises:
            ValidationError: If ``image_data_url`` is not a base64 data URL
            OperationFailedError: If the job reports an error
            MuseError: If the finished job has no video or the download is empty
        """
        backend = self._require_backend()
        model = self._models.video

        match = _DATA_URL.match(image_data_url)
        if match is None:
            raise ValidationError("Invalid image format", field="image_data_url")
        mime_type, image_bytes = match.group(1), match.group(2)

        payload = {
            "instances": [
                {
                    "prompt": prompt or DEFAULT_VIDEO_PROMPT,
                    "image": {"bytesBase64Encoded": image_bytes, "mimeType": mime_type},
                }
            ],
            "parameters": {"sampleCount": 1, "resolution": "720p", "aspectRatio": "16:9"},
        }

        async def fetch_status(handle: str) -> LongRunningOperation:
            return await self._limiter.execute(lambda: backend.poll(handle))

        with operation_context("generate_video", model):
            try:
                operation = await self._call(lambda: backend.start(model, payload), cancel_token)
                logger.info("Video job started", operation_name=operation.name)

                finished = await poll_until_done(
                    operation,
                    fetch_status,
                    self._poller_config.interval_ms,
                    retry_config=self._retry_config,
                    cancel_token=cancel_token,
                )

                uri = _video_uri(finished.response)
                if not uri:
                    raise MuseError(
                        "Video generation completed but no URI returned (possible safety filter)."
                    )

                data = await self._call(lambda: backend.download(uri), cancel_token)
                if not data:
                    raise MuseError("Video download failed: Empty response")
            except Exception:
                logger.exception("Video generation failed")
                raise

            logger.info("Video downloaded", size=len(data))
            return VideoResult(uri=uri, data=data, operation_name=finished.name)

    async def generate_social_copy(
        self,
        image_base64: str,
        prompt: str,
        emotion: str,
        *,
        cancel_token: CancelToken | None = None,
    ) -> SocialCopy:
        """Write a short social media post for a generated image.

        Falls back to a generic post when generation or parsing fails.
        """
        backend = self._require_backend()
        model = self._models.social
        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"inlineData": {"data": image_base64, "mimeType": "image/png"}},
                        {
                            "text": (
                                "Write a short social media post for this AI artwork. "
                                f'Original idea: "{prompt}". Viewer emotion: {emotion}. '
                                'Reply as JSON: {"title": str, "text": str, "hashtags": [str]}'
                            )
                        },
                    ],
                }
            ],
            "generationConfig": {"responseMimeType": "application/json"},
        }

        with operation_context("generate_social_copy", model):
            try:
                body = await self._call(lambda: backend.invoke(model, payload), cancel_token)
                text = response_text(body)
                if not text:
                    raise MuseError("No text generated")
                return SocialCopy.model_validate_json(text)
            except OperationCancelledError:
                raise
            except Exception:
                logger.exception("Social copy generation failed")
                return SocialCopy(
                    title="AI Masterpiece",
                    text=f"Check out this amazing art I created with Muse! prompt: {prompt}",
                    hashtags=["#GeminiAI", "#Creative"],
                )

    async def run_diagnostics(self) -> list[str]:
        """Check the backend and report the client's state as log lines.

        Never raises: a missing credential or a failing check is reported
        in the returned lines.
        """
        lines: list[str] = []

        def log(message: str) -> None:
            logger.info(message)
            lines.append(message)

        log("=== SYSTEM DIAGNOSTICS INITIATED ===")
        log(f"[TIMESTAMP] {datetime.now(timezone.utc).isoformat()}")

        try:
            backend = self._require_backend()
        except CredentialError:
            log("[CRITICAL] API_KEY MISSING - SYSTEM HALTED")
            return lines
        log("[OK] API_KEY DETECTED")

        model = self._models.text
        log("----------------------------------------")
        log(f"[TEST 1/2] NEURAL TEXT LINK ({model})")
        started = time.perf_counter()
        try:
            body = await self._limiter.execute(
                lambda: backend.invoke(model, _text_payload("Ping"))
            )
            duration_ms = round((time.perf_counter() - started) * 1000)
            log(f'[SUCCESS] Response: "{response_text(body)[:10]}..." ({duration_ms}ms)')
        except Exception as e:
            log(f"[FAIL] Text Model Error ({classify(e).value}): {e}")

        stats = self._limiter.get_stats()
        log("----------------------------------------")
        log("[TEST 2/2] ADMISSION CONTROL")
        log(
            f"> SLOTS: {stats['active']}/{stats['max_concurrent']} active, "
            f"{stats['pending']} pending, peak {stats['peak']}"
        )
        log("----------------------------------------")
        return lines

    async def close(self) -> None:
        """Close the backend if this client created it."""
        if self._backend is not None and self._owns_backend:
            await self._backend.close()
            self._backend = None

    async def __aenter__(self) -> MuseClient:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
