"""Tests for the Late.dev direct-resolve backend."""

import json

import httpx
import pytest

from mediagrab.core.base import FetchRequest, Platform, ProviderKind
from mediagrab.core.exceptions import (
    DownloadIOError,
    ProviderError,
    ResponseParseError,
    ValidationError,
)
from mediagrab.core.providers.late_dev import NO_AUDIO_WARNING, LateDevBackend

from .conftest import LATE_BASE

MEDIA_URL = "https://cdn.example.com/media/v.mp4"


class FailingStream(httpx.AsyncByteStream):
    """Body that breaks off after the first chunk."""

    async def __aiter__(self):
        yield b"partial"
        raise httpx.ReadError("connection reset")


def make_backend(fake_api, fixed_clock, **kwargs) -> LateDevBackend:
    return LateDevBackend(
        api_key="late-key",
        transport=fake_api.transport,
        clock=fixed_clock,
        **kwargs,
    )


def make_request(tmp_path, platform=Platform.YOUTUBE, **kwargs) -> FetchRequest:
    return FetchRequest(
        url="https://youtube.com/watch?v=abc",
        platform=platform,
        output_dir=tmp_path,
        **kwargs,
    )


class TestLateDevBackendInit:
    """Tests for backend construction."""

    @pytest.mark.parametrize("key", ["", "   "])
    def test_missing_api_key_raises(self, key):
        with pytest.raises(ValidationError, match="API key"):
            LateDevBackend(api_key=key)

    def test_provider_kind(self):
        assert LateDevBackend(api_key="k").provider == ProviderKind.LATE_DEV

    def test_client_requires_context_manager(self):
        with pytest.raises(RuntimeError):
            LateDevBackend(api_key="k").client


class TestLateDevParams:
    """Tests for query parameter building."""

    def test_format_and_quality_for_youtube(self, tmp_path):
        backend = LateDevBackend(api_key="k")
        params = backend.build_params(
            make_request(tmp_path, format="mp4", quality="720p")
        )
        assert params == {
            "url": "https://youtube.com/watch?v=abc",
            "format": "mp4",
            "quality": "720p",
        }

    def test_format_and_quality_dropped_for_other_platforms(self, tmp_path):
        backend = LateDevBackend(api_key="k")
        params = backend.build_params(
            make_request(tmp_path, platform=Platform.TIKTOK, format="mp4", quality="720p")
        )
        assert params == {"url": "https://youtube.com/watch?v=abc"}

    def test_empty_format_and_quality_omitted(self, tmp_path):
        backend = LateDevBackend(api_key="k")
        params = backend.build_params(make_request(tmp_path, format="", quality=None))
        assert params == {"url": "https://youtube.com/watch?v=abc"}


class TestLateDevFetch:
    """Tests for LateDevBackend.fetch against a fake API."""

    @pytest.mark.asyncio
    async def test_downloads_resolved_url(self, fake_api, fixed_clock, tmp_path):
        fake_api.add("GET", f"{LATE_BASE}/tools/youtube/download",
                      {"json": {"downloadUrl": MEDIA_URL}})
        fake_api.add("GET", MEDIA_URL, {"content": b"video-bytes"})

        async with make_backend(fake_api, fixed_clock) as backend:
            files = await backend.fetch(make_request(tmp_path))

        assert len(files) == 1
        assert files[0].path == tmp_path / "youtube_20250115-143022.mp4"
        assert files[0].path.read_bytes() == b"video-bytes"
        assert files[0].warnings == []

    @pytest.mark.asyncio
    async def test_api_call_is_authenticated_media_fetch_is_not(
        self, fake_api, fixed_clock, tmp_path
    ):
        fake_api.add("GET", f"{LATE_BASE}/tools/youtube/download",
                     {"json": {"downloadUrl": MEDIA_URL}})
        fake_api.add("GET", MEDIA_URL, {"content": b"x"})

        async with make_backend(fake_api, fixed_clock) as backend:
            await backend.fetch(make_request(tmp_path, format="webm", quality="720p"))

        api_call = fake_api.calls("GET", f"{LATE_BASE}/tools/youtube/download")[0]
        assert api_call.headers["Authorization"] == "Bearer late-key"
        assert api_call.url.params["url"] == "https://youtube.com/watch?v=abc"
        assert api_call.url.params["format"] == "webm"
        assert api_call.url.params["quality"] == "720p"

        media_call = fake_api.calls("GET", MEDIA_URL)[0]
        assert "Authorization" not in media_call.headers

    @pytest.mark.asyncio
    async def test_requested_format_sets_extension(self, fake_api, fixed_clock, tmp_path):
        fake_api.add("GET", f"{LATE_BASE}/tools/youtube/download",
                     {"json": {"downloadUrl": MEDIA_URL}})
        fake_api.add("GET", MEDIA_URL, {"content": b"x"})

        async with make_backend(fake_api, fixed_clock) as backend:
            files = await backend.fetch(make_request(tmp_path, format="webm"))

        assert files[0].path.name == "youtube_20250115-143022.webm"

    @pytest.mark.asyncio
    async def test_target_path_used_as_is(self, fake_api, fixed_clock, tmp_path):
        fake_api.add("GET", f"{LATE_BASE}/tools/youtube/download",
                     {"json": {"downloadUrl": MEDIA_URL}})
        fake_api.add("GET", MEDIA_URL, {"content": b"new"})
        target = tmp_path / "mine.mp4"
        target.write_bytes(b"old")

        async with make_backend(fake_api, fixed_clock) as backend:
            files = await backend.fetch(make_request(tmp_path, target_path=target))

        assert files[0].path == target
        assert target.read_bytes() == b"new"

    @pytest.mark.asyncio
    async def test_generated_name_skips_existing_files(self, fake_api, fixed_clock, tmp_path):
        fake_api.add("GET", f"{LATE_BASE}/tools/youtube/download",
                     {"json": {"downloadUrl": MEDIA_URL}})
        fake_api.add("GET", MEDIA_URL, {"content": b"third"})
        (tmp_path / "youtube_20250115-143022.mp4").write_bytes(b"first")
        (tmp_path / "youtube_20250115-143022_1.mp4").write_bytes(b"second")

        async with make_backend(fake_api, fixed_clock) as backend:
            files = await backend.fetch(make_request(tmp_path))

        assert files[0].path == tmp_path / "youtube_20250115-143022_2.mp4"
        assert files[0].path.read_bytes() == b"third"
        assert (tmp_path / "youtube_20250115-143022.mp4").read_bytes() == b"first"
        assert (tmp_path / "youtube_20250115-143022_1.mp4").read_bytes() == b"second"

    @pytest.mark.asyncio
    async def test_silent_stream_fetches_alternate_with_audio(
        self, fake_api, fixed_clock, tmp_path
    ):
        alt_url = "https://cdn.example.com/media/merged.mp4"
        fake_api.add("GET", f"{LATE_BASE}/tools/youtube/download", {"json": {
            "downloadUrl": MEDIA_URL,
            "hasAudio": False,
            "formats": [{"url": alt_url, "hasAudio": True}],
        }})
        fake_api.add("GET", alt_url, {"content": b"merged"})

        async with make_backend(fake_api, fixed_clock) as backend:
            files = await backend.fetch(make_request(tmp_path))

        assert files[0].path.read_bytes() == b"merged"
        assert files[0].warnings == []
        assert fake_api.calls("GET", MEDIA_URL) == []

    @pytest.mark.asyncio
    async def test_silent_stream_without_alternate_warns(
        self, fake_api, fixed_clock, tmp_path
    ):
        fake_api.add("GET", f"{LATE_BASE}/tools/youtube/download",
                     {"json": {"downloadUrl": MEDIA_URL, "hasAudio": False}})
        fake_api.add("GET", MEDIA_URL, {"content": b"silent"})

        async with make_backend(fake_api, fixed_clock) as backend:
            files = await backend.fetch(make_request(tmp_path))

        assert files[0].path.read_bytes() == b"silent"
        assert files[0].warnings == [NO_AUDIO_WARNING]

    @pytest.mark.asyncio
    async def test_non_2xx_raises_provider_error(self, fake_api, fixed_clock, tmp_path):
        fake_api.add("GET", f"{LATE_BASE}/tools/youtube/download",
                     {"status": 401, "text": "invalid key"})

        async with make_backend(fake_api, fixed_clock) as backend:
            with pytest.raises(ProviderError) as exc_info:
                await backend.fetch(make_request(tmp_path))

        assert exc_info.value.status_code == 401
        assert exc_info.value.body == "invalid key"
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_transport_error_raises_provider_error(
        self, fake_api, fixed_clock, tmp_path
    ):
        fake_api.add("GET", f"{LATE_BASE}/tools/youtube/download",
                     httpx.ConnectError("refused"))

        async with make_backend(fake_api, fixed_clock) as backend:
            with pytest.raises(ProviderError) as exc_info:
                await backend.fetch(make_request(tmp_path))

        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_malformed_json_raises_parse_error(self, fake_api, fixed_clock, tmp_path):
        fake_api.add("GET", f"{LATE_BASE}/tools/youtube/download",
                     {"text": "<html>maintenance</html>"})

        async with make_backend(fake_api, fixed_clock) as backend:
            with pytest.raises(ResponseParseError) as exc_info:
                await backend.fetch(make_request(tmp_path))

        assert exc_info.value.body == "<html>maintenance</html>"

    @pytest.mark.asyncio
    async def test_empty_download_url_raises_parse_error(
        self, fake_api, fixed_clock, tmp_path
    ):
        body = json.dumps({"downloadUrl": ""})
        fake_api.add("GET", f"{LATE_BASE}/tools/youtube/download", {"text": body})

        async with make_backend(fake_api, fixed_clock) as backend:
            with pytest.raises(ResponseParseError) as exc_info:
                await backend.fetch(make_request(tmp_path))

        assert exc_info.value.body == body
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_media_host_error_raises_provider_error(
        self, fake_api, fixed_clock, tmp_path
    ):
        fake_api.add("GET", f"{LATE_BASE}/tools/youtube/download",
                     {"json": {"downloadUrl": MEDIA_URL}})
        fake_api.add("GET", MEDIA_URL, {"status": 403, "text": "expired"})

        async with make_backend(fake_api, fixed_clock) as backend:
            with pytest.raises(ProviderError) as exc_info:
                await backend.fetch(make_request(tmp_path))

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_unwritable_path_raises_io_error(self, fake_api, fixed_clock, tmp_path):
        fake_api.add("GET", f"{LATE_BASE}/tools/youtube/download",
                     {"json": {"downloadUrl": MEDIA_URL}})
        fake_api.add("GET", MEDIA_URL, {"content": b"x"})
        target = tmp_path / "missing-dir" / "out.mp4"

        async with make_backend(fake_api, fixed_clock) as backend:
            with pytest.raises(DownloadIOError) as exc_info:
                await backend.fetch(make_request(tmp_path, target_path=target))

        assert exc_info.value.path == target

    @pytest.mark.asyncio
    async def test_interrupted_stream_leaves_partial_file(
        self, fake_api, fixed_clock, tmp_path
    ):
        fake_api.add("GET", f"{LATE_BASE}/tools/youtube/download",
                     {"json": {"downloadUrl": MEDIA_URL}})
        fake_api.add("GET", MEDIA_URL, lambda request: httpx.Response(200, stream=FailingStream()))

        async with make_backend(fake_api, fixed_clock) as backend:
            with pytest.raises(ProviderError):
                await backend.fetch(make_request(tmp_path))

        assert (tmp_path / "youtube_20250115-143022.mp4").exists()

    @pytest.mark.asyncio
    async def test_custom_base_url(self, fake_api, fixed_clock, tmp_path):
        fake_api.add("GET", "https://late.internal/v2/tools/tiktok/download",
                     {"json": {"downloadUrl": MEDIA_URL}})
        fake_api.add("GET", MEDIA_URL, {"content": b"x"})

        backend = make_backend(fake_api, fixed_clock, base_url="https://late.internal/v2/")
        async with backend:
            files = await backend.fetch(make_request(tmp_path, platform=Platform.TIKTOK))

        assert files[0].path.name == "tiktok_20250115-143022.mp4"

    @pytest.mark.asyncio
    async def test_client_closed_after_context(self, fake_api, fixed_clock):
        backend = make_backend(fake_api, fixed_clock)
        async with backend:
            client = backend.client
        assert client.is_closed
        assert backend._client is None
