"""Tests for client module."""

import json

import pytest

from muse_runtime.client import ModelConfig, MuseClient, RefinedPrompt, SocialCopy
from muse_runtime.errors import (
    CredentialError,
    MuseError,
    OperationCancelledError,
    OperationFailedError,
    RemoteError,
    TransportError,
    ValidationError,
)
from muse_runtime.resilience import CancelToken, ConcurrencyLimiter, PollerConfig, RetryConfig
from muse_runtime.types import LongRunningOperation, ParserEvent

IMAGE_DATA_URL = "data:image/png;base64,iVBORw0KGgo="
VIDEO_URI = "https://files.test/v1beta/files/video-1:download?alt=media"


def _text(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def _image(data: str = "iVBORw0KGgo=") -> dict:
    return {
        "candidates": [
            {"content": {"parts": [{"inlineData": {"mimeType": "image/png", "data": data}}]}}
        ]
    }


def _video_done(uri: str = VIDEO_URI) -> LongRunningOperation:
    return LongRunningOperation(
        name="operations/video-1",
        done=True,
        response={"generateVideoResponse": {"generatedSamples": [{"video": {"uri": uri}}]}},
    )


def _client(backend, **kwargs) -> MuseClient:
    kwargs.setdefault("retry_config", RetryConfig(max_retries=3, initial_delay_ms=10))
    kwargs.setdefault("poller_config", PollerConfig(interval_ms=5000))
    kwargs.setdefault("limiter", ConcurrencyLimiter(2))
    return MuseClient(backend, **kwargs)


class TestMissingCredential:
    """Tests for behavior without a credential."""

    @pytest.mark.asyncio
    async def test_operations_fail_without_backend_calls(self, no_api_key, stub_backend) -> None:
        """Test every operation fails before reaching the backend."""
        client = _client(stub_backend)

        with pytest.raises(CredentialError):
            await client.refine_prompt("a cat", "noir")
        with pytest.raises(CredentialError):
            await client.generate_inspiration()
        with pytest.raises(CredentialError):
            await client.generate_image("a cat")
        with pytest.raises(CredentialError):
            await client.generate_video(IMAGE_DATA_URL, "pan")
        with pytest.raises(CredentialError):
            await client.generate_social_copy("AAAA", "a cat", "joy")

        assert stub_backend.calls == []
        assert client.limiter.get_stats()["total_admitted"] == 0

    @pytest.mark.asyncio
    async def test_diagnostics_report_missing_key(self, no_api_key, stub_backend) -> None:
        """Test diagnostics halt on a missing credential."""
        lines = await _client(stub_backend).run_diagnostics()
        assert "[CRITICAL] API_KEY MISSING - SYSTEM HALTED" in lines
        assert stub_backend.calls == []

    def test_explicit_key(self, no_api_key, stub_backend) -> None:
        """Test an explicit key counts as a credential."""
        assert _client(stub_backend, api_key="k").has_credential is True
        assert _client(stub_backend).has_credential is False


class TestRefinePrompt:
    """Tests for refine_prompt."""

    @pytest.mark.asyncio
    async def test_streams_thought_and_returns_prompt(self, api_key, stub_backend) -> None:
        """Test live thought events and final extraction."""
        stub_backend.stream_scripts.append(
            [
                "Sure. [THO",
                "UGHT]Looking at",
                " the cat[/THOUGHT]\n[PROMPT] neon cat, rain [/PROMPT]",
            ]
        )
        events: list[ParserEvent] = []

        result = await _client(stub_backend).refine_prompt("a cat", "cyberpunk", events.append)

        assert result == RefinedPrompt(thought="Looking at the cat", refined_prompt="neon cat, rain")
        assert events[0] == ParserEvent(content="Initializing creative neural pathways...")
        assert ParserEvent(content="Looking at", is_complete=False) in events
        assert events[-1] == ParserEvent(content="Looking at the cat", is_complete=True)
        assert stub_backend.calls == [("invoke_stream", ModelConfig().text)]

    @pytest.mark.asyncio
    async def test_missing_sections_use_defaults(self, api_key, stub_backend) -> None:
        """Test defaults when the model ignores the markers."""
        stub_backend.stream_scripts.append(["just some text"])

        result = await _client(stub_backend).refine_prompt("a cat", "noir")

        assert result.thought == "Analyzing creative parameters..."
        assert result.refined_prompt == "a cat, noir"
        assert result.fallback is False

    @pytest.mark.asyncio
    async def test_stream_restarted_after_transient_failure(
        self, api_key, stub_backend, recorded_sleeps
    ) -> None:
        """Test a dropped stream is retried from scratch."""
        stub_backend.stream_scripts.extend(
            [
                ["[THOUGHT]half", TransportError("Connection failed")],
                ["[THOUGHT]whole[/THOUGHT][PROMPT]p[/PROMPT]"],
            ]
        )

        result = await _client(stub_backend).refine_prompt("a cat", "noir")

        assert result.thought == "whole"
        assert result.refined_prompt == "p"
        assert len(stub_backend.calls) == 2
        assert len(recorded_sleeps) == 1

    @pytest.mark.asyncio
    async def test_fatal_failure_falls_back(self, api_key, stub_backend, recorded_sleeps) -> None:
        """Test a fatal failure yields the raw prompt."""
        stub_backend.stream_scripts.append([RemoteError("Invalid argument", status_code=400)])
        events: list[ParserEvent] = []

        result = await _client(stub_backend).refine_prompt("a cat", "noir", events.append)

        assert result.fallback is True
        assert result.refined_prompt == "a cat noir"
        assert events[-1].is_complete is True
        assert recorded_sleeps == []

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_abort(self, api_key, stub_backend) -> None:
        """Test a raising on_thought callback leaves the result intact."""
        stub_backend.stream_scripts.append(["[THOUGHT]calm[/THOUGHT][PROMPT]sea[/PROMPT]"])
        calls: list[ParserEvent] = []

        def on_thought(event: ParserEvent) -> None:
            calls.append(event)
            raise RuntimeError("ui gone")

        result = await _client(stub_backend).refine_prompt("a sea", "ink", on_thought)

        assert result == RefinedPrompt(thought="calm", refined_prompt="sea")
        assert result.fallback is False
        assert calls[-1] == ParserEvent(content="calm", is_complete=True)
        assert len(stub_backend.calls) == 1

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, api_key, stub_backend) -> None:
        """Test cancellation is not turned into a fallback."""
        token = CancelToken()
        token.cancel()

        with pytest.raises(OperationCancelledError):
            await _client(stub_backend).refine_prompt("a cat", "noir", cancel_token=token)
        assert stub_backend.calls == []


class TestGenerateInspiration:
    """Tests for generate_inspiration."""

    @pytest.mark.asyncio
    async def test_returns_text(self, api_key, stub_backend) -> None:
        """Test the generated text is trimmed."""
        stub_backend.invoke_results.append(_text("  Chrome whispers beneath a drowned moon \n"))

        result = await _client(stub_backend).generate_inspiration(["glass", "tides"])

        assert result == "Chrome whispers beneath a drowned moon"
        prompt = stub_backend.payloads[0]["contents"][0]["parts"][0]["text"]
        assert "glass" in prompt

    @pytest.mark.asyncio
    async def test_empty_response_uses_fallback(self, api_key, stub_backend) -> None:
        """Test an empty response falls back to a fixed phrase."""
        stub_backend.invoke_results.append(_text(""))
        result = await _client(stub_backend).generate_inspiration()
        assert result == "Nebula Glitch Phantom of the Void"

    @pytest.mark.asyncio
    async def test_fatal_error_propagates(self, api_key, stub_backend) -> None:
        """Test backend errors surface unchanged."""
        error = RemoteError("Permission denied", status_code=403)
        stub_backend.invoke_results.append(error)

        with pytest.raises(RemoteError) as exc_info:
            await _client(stub_backend).generate_inspiration()
        assert exc_info.value is error


class TestGenerateImage:
    """Tests for generate_image."""

    @pytest.mark.asyncio
    async def test_returns_data_url(self, api_key, stub_backend) -> None:
        """Test inline image data becomes a data URL."""
        stub_backend.invoke_results.append(_image("QUJD"))

        result = await _client(stub_backend).generate_image("neon cat")

        assert result.data == "data:image/png;base64,QUJD"
        assert result.mime_type == "image/png"
        assert stub_backend.calls == [("invoke", ModelConfig().image)]

    @pytest.mark.asyncio
    async def test_retries_when_overloaded(self, api_key, stub_backend, recorded_sleeps) -> None:
        """Test an overloaded backend is retried."""
        stub_backend.invoke_results.extend(
            [RemoteError("overloaded", status_code=503), _image()]
        )

        result = await _client(stub_backend).generate_image("neon cat")

        assert result.data.startswith("data:image/png;base64,")
        assert len(stub_backend.calls) == 2
        assert len(recorded_sleeps) == 1

    @pytest.mark.asyncio
    async def test_no_image_data(self, api_key, stub_backend) -> None:
        """Test a text-only response is an error."""
        stub_backend.invoke_results.append(_text("I cannot draw that"))

        with pytest.raises(MuseError, match="no image data"):
            await _client(stub_backend).generate_image("neon cat")

    @pytest.mark.asyncio
    async def test_slot_released(self, api_key, stub_backend) -> None:
        """Test the limiter slot is released after the call."""
        stub_backend.invoke_results.append(_image())
        client = _client(stub_backend)

        await client.generate_image("neon cat")

        stats = client.limiter.get_stats()
        assert stats["active"] == 0
        assert stats["total_admitted"] == 1


class TestGenerateVideo:
    """Tests for generate_video."""

    @pytest.mark.asyncio
    async def test_full_cycle(self, api_key, stub_backend, recorded_sleeps) -> None:
        """Test start, poll until done and download."""
        stub_backend.start_results.append(LongRunningOperation(name="operations/video-1"))
        stub_backend.poll_results.extend(
            [LongRunningOperation(name="operations/video-1"), _video_done()]
        )
        stub_backend.download_results.append(b"mp4-bytes")

        result = await _client(stub_backend).generate_video(IMAGE_DATA_URL, "slow pan")

        assert result.uri == VIDEO_URI
        assert result.data == b"mp4-bytes"
        assert result.operation_name == "operations/video-1"
        assert [call[0] for call in stub_backend.calls] == ["start", "poll", "poll", "download"]
        assert recorded_sleeps == [5.0, 5.0]

        instance = stub_backend.payloads[0]["instances"][0]
        assert instance["prompt"] == "slow pan"
        assert instance["image"] == {"bytesBase64Encoded": "iVBORw0KGgo=", "mimeType": "image/png"}

    @pytest.mark.asyncio
    async def test_generated_videos_shape(self, api_key, stub_backend, recorded_sleeps) -> None:
        """Test the alternative response shape is understood."""
        stub_backend.start_results.append(
            LongRunningOperation(
                name="operations/video-2",
                done=True,
                response={"generatedVideos": [{"video": {"uri": VIDEO_URI}}]},
            )
        )
        stub_backend.download_results.append(b"mp4")

        result = await _client(stub_backend).generate_video(IMAGE_DATA_URL)

        assert result.uri == VIDEO_URI
        assert recorded_sleeps == []
        instance = stub_backend.payloads[0]["instances"][0]
        assert instance["prompt"] == "Cinematic movement, slow motion, high quality"

    @pytest.mark.asyncio
    async def test_invalid_image(self, api_key, stub_backend) -> None:
        """Test a malformed data URL is rejected before any call."""
        with pytest.raises(ValidationError):
            await _client(stub_backend).generate_video("not-a-data-url", "pan")
        assert stub_backend.calls == []

    @pytest.mark.asyncio
    async def test_job_error(self, api_key, stub_backend, recorded_sleeps) -> None:
        """Test a job error ends the wait without a download."""
        stub_backend.start_results.append(LongRunningOperation(name="operations/video-1"))
        stub_backend.poll_results.append(
            LongRunningOperation(
                name="operations/video-1",
                done=True,
                error={"code": 3, "message": "Blocked by safety filter"},
            )
        )

        with pytest.raises(OperationFailedError, match="safety filter"):
            await _client(stub_backend).generate_video(IMAGE_DATA_URL, "pan")
        assert "download" not in [call[0] for call in stub_backend.calls]

    @pytest.mark.asyncio
    async def test_missing_uri(self, api_key, stub_backend, recorded_sleeps) -> None:
        """Test a finished job without a video."""
        stub_backend.start_results.append(
            LongRunningOperation(name="operations/video-1", done=True, response={})
        )

        with pytest.raises(MuseError, match="possible safety filter"):
            await _client(stub_backend).generate_video(IMAGE_DATA_URL, "pan")

    @pytest.mark.asyncio
    async def test_empty_download(self, api_key, stub_backend, recorded_sleeps) -> None:
        """Test an empty download is an error."""
        stub_backend.start_results.append(_video_done())
        stub_backend.download_results.append(b"")

        with pytest.raises(MuseError, match="Empty response"):
            await _client(stub_backend).generate_video(IMAGE_DATA_URL, "pan")


class TestGenerateSocialCopy:
    """Tests for generate_social_copy."""

    @pytest.mark.asyncio
    async def test_parses_json(self, api_key, stub_backend) -> None:
        """Test the JSON reply is parsed."""
        reply = {"title": "Neon Dreams", "text": "Rain and chrome.", "hashtags": ["#AIArt"]}
        stub_backend.invoke_results.append(_text(json.dumps(reply)))

        result = await _client(stub_backend).generate_social_copy("AAAA", "neon cat", "awe")

        assert result == SocialCopy(**reply)
        payload = stub_backend.payloads[0]
        assert payload["generationConfig"]["responseMimeType"] == "application/json"

    @pytest.mark.asyncio
    async def test_invalid_json_falls_back(self, api_key, stub_backend) -> None:
        """Test an unparsable reply yields the generic post."""
        stub_backend.invoke_results.append(_text("not json"))

        result = await _client(stub_backend).generate_social_copy("AAAA", "neon cat", "awe")

        assert result.title == "AI Masterpiece"
        assert "neon cat" in result.text


class TestDiagnostics:
    """Tests for run_diagnostics."""

    @pytest.mark.asyncio
    async def test_healthy_backend(self, api_key, stub_backend) -> None:
        """Test a healthy backend report."""
        stub_backend.invoke_results.append(_text("Pong, all systems nominal"))

        lines = await _client(stub_backend).run_diagnostics()

        assert "[OK] API_KEY DETECTED" in lines
        assert any(line.startswith('[SUCCESS] Response: "Pong, all ') for line in lines)
        assert any(line.startswith("> SLOTS: 0/2 active") for line in lines)

    @pytest.mark.asyncio
    async def test_failed_check_is_reported(self, api_key, stub_backend) -> None:
        """Test a failing check is reported, not raised."""
        stub_backend.invoke_results.append(RemoteError("overloaded", status_code=503))

        lines = await _client(stub_backend).run_diagnostics()

        assert any(line.startswith("[FAIL] Text Model Error (overloaded)") for line in lines)


class TestLifecycle:
    """Tests for client lifecycle."""

    @pytest.mark.asyncio
    async def test_injected_backend_not_closed(self, api_key, stub_backend) -> None:
        """Test the client leaves an injected backend open."""
        async with _client(stub_backend):
            pass
        assert stub_backend.closed is False

    def test_model_config_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test model overrides from environment."""
        monkeypatch.setenv("MUSE_IMAGE_MODEL", "custom-image")
        models = ModelConfig.from_env()
        assert models.image == "custom-image"
        assert models.text == ModelConfig().text
