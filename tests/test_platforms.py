"""
Tests for platform adapters.

HTTP traffic is served by ``httpx.MockTransport`` so every adapter runs its
real request code against canned provider responses.
"""

import json

import httpx
import pytest

from crosspost.exceptions import (
    MissingFieldError,
    PermanentPublishError,
    TransientPublishError,
    UnknownPlatformError,
    ValidationError,
)
from crosspost.platforms import ADAPTERS, get_adapter
from crosspost.platforms.base import Credentials, Platform
from crosspost.platforms.facebook import FacebookPageAdapter
from crosspost.platforms.instagram import InstagramBusinessAdapter
from crosspost.platforms.linkedin import LinkedInAdapter
from crosspost.platforms.youtube import YouTubeDraftAdapter

POST_TEXT = "Sharing what our team shipped this week."


def mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# =============================================================================
# Platform enum / registry
# =============================================================================


class TestPlatform:

    def test_parse_values(self):
        assert Platform.parse("linkedin") is Platform.LINKEDIN
        assert Platform.parse(Platform.YOUTUBE_DRAFT) is Platform.YOUTUBE_DRAFT

    @pytest.mark.parametrize("value", ["myspace", "", None, "LinkedIn"])
    def test_parse_rejects_unknown(self, value):
        with pytest.raises(UnknownPlatformError):
            Platform.parse(value)

    def test_registry_covers_every_platform(self):
        assert set(ADAPTERS) == set(Platform)
        for platform, adapter in ADAPTERS.items():
            assert adapter.platform is platform

    def test_get_adapter_rejects_unknown(self):
        with pytest.raises(UnknownPlatformError):
            get_adapter("tiktok")

    def test_credentials_repr_hides_token(self):
        creds = Credentials(access_token="secret-token", external_account_id="urn:li:person:1")
        assert "secret-token" not in repr(creds)


# =============================================================================
# Validation
# =============================================================================


class TestValidation:

    @pytest.mark.parametrize(
        "platform, text, error, message",
        [
            (Platform.LINKEDIN, "", MissingFieldError, "Text required for linkedin"),
            (Platform.FACEBOOK_PAGE, None, MissingFieldError, "Text required for facebook_page"),
            (Platform.INSTAGRAM_BUSINESS, "x" * 2201, ValidationError, "ig text too long"),
            (Platform.LINKEDIN, "x" * 3001, ValidationError, "linkedin text too long"),
            (Platform.FACEBOOK_PAGE, "x" * 20001, ValidationError, "facebook_page text too long"),
            (Platform.LINKEDIN, "Remember to v0te", ValidationError, "Forbidden content detected"),
        ],
    )
    def test_text_rules(self, platform, text, error, message):
        with pytest.raises(error, match=message):
            ADAPTERS[platform].validate(text)

    def test_text_at_limit_is_valid(self):
        ADAPTERS[Platform.INSTAGRAM_BUSINESS].validate("x" * 2200)
        ADAPTERS[Platform.LINKEDIN].validate(POST_TEXT)

    @pytest.mark.parametrize(
        "draft",
        [
            None,
            "just a string",
            {"title": "Launch recap"},
            {"description": "Walkthrough of the new release"},
        ],
    )
    def test_youtube_requires_title_and_description(self, draft):
        with pytest.raises(MissingFieldError, match="YouTube title/description required"):
            ADAPTERS[Platform.YOUTUBE_DRAFT].validate(draft)

    @pytest.mark.parametrize(
        "draft",
        [
            {"title": "t" * 101, "description": "ok"},
            {"title": "ok", "description": "d" * 5001},
        ],
    )
    def test_youtube_length_limits(self, draft):
        with pytest.raises(ValidationError, match="YouTube length exceeded"):
            ADAPTERS[Platform.YOUTUBE_DRAFT].validate(draft)

    def test_youtube_forbidden_description(self):
        with pytest.raises(ValidationError, match="Forbidden content detected"):
            ADAPTERS[Platform.YOUTUBE_DRAFT].validate({"title": "Recap", "description": "Election night"})


# =============================================================================
# Error classification
# =============================================================================


class TestClassification:

    @pytest.mark.parametrize(
        "status, payload, transient, code",
        [
            (400, {"error": {"code": 4}}, True, "rate_limited"),
            (429, {}, True, "rate_limited"),
            (500, {"error": {"code": 2}}, True, "provider_unavailable"),
            (400, {"error": {"code": 1, "is_transient": True}}, True, "provider_unavailable"),
            (400, {"error": {"code": 190}}, False, "auth_revoked"),
            (403, {"error": {"code": 10}}, False, "permission_denied"),
            (403, {"error": {"code": 230}}, False, "permission_denied"),
            (400, {"error": {"code": 100}}, False, "invalid_content"),
            (503, {}, True, "provider_unavailable"),
            (400, {}, False, "rejected"),
        ],
    )
    def test_graph_api(self, status, payload, transient, code):
        error = FacebookPageAdapter().classify_error(status, payload)
        assert error.transient is transient
        assert error.code == code

    @pytest.mark.parametrize(
        "status, transient, code",
        [
            (429, True, "rate_limited"),
            (502, True, "provider_unavailable"),
            (401, False, "unauthorized"),
            (403, False, "forbidden"),
            (422, False, "invalid_content"),
            (404, False, "api_error"),
        ],
    )
    def test_linkedin(self, status, transient, code):
        error = LinkedInAdapter().classify_error(status, {"message": "nope"})
        assert error.transient is transient
        assert error.code == code

    @pytest.mark.parametrize(
        "status, reason, transient, code",
        [
            (403, "quotaExceeded", True, "quota_exceeded"),
            (403, "forbidden", False, "youtube_insufficient_permissions"),
            (401, None, False, "youtube_invalid_token"),
            (404, None, False, "youtube_channel_not_found"),
            (400, None, False, "youtube_invalid_metadata"),
            (500, None, True, "provider_unavailable"),
            (409, None, False, "youtube_upload_failed"),
        ],
    )
    def test_youtube(self, status, reason, transient, code):
        payload = {"error": {"errors": [{"reason": reason}]}} if reason else {}
        error = YouTubeDraftAdapter().classify_error(status, payload)
        assert error.transient is transient
        assert error.code == code


# =============================================================================
# LinkedIn
# =============================================================================


class TestLinkedInPublish:

    @pytest.mark.asyncio
    async def test_text_post(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(201, headers={"x-restli-id": "urn:li:share:42"}, json={})

        async with mock_client(handler) as client:
            result = await LinkedInAdapter(http_client=client).publish(
                POST_TEXT, Credentials("tok", "urn:li:person:abc")
            )

        assert result.external_id == "urn:li:share:42"
        assert result.published_url == "https://www.linkedin.com/feed/update/urn:li:share:42"
        body = json.loads(seen[0].content)
        assert body["author"] == "urn:li:person:abc"
        assert body["specificContent"]["com.linkedin.ugc.ShareContent"]["shareCommentary"]["text"] == POST_TEXT
        assert seen[0].headers["Authorization"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_invalid_author_is_permanent(self):
        with pytest.raises(PermanentPublishError) as exc_info:
            await LinkedInAdapter().publish(
                POST_TEXT, Credentials("tok", "12345")
            )
        assert exc_info.value.code == "invalid_author"

    @pytest.mark.asyncio
    async def test_rate_limit_is_transient(self):
        async with mock_client(lambda r: httpx.Response(429, json={"message": "slow down"})) as client:
            with pytest.raises(TransientPublishError) as exc_info:
                await LinkedInAdapter(http_client=client).publish(
                    POST_TEXT, Credentials("tok", "urn:li:person:abc")
                )
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_network_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with mock_client(handler) as client:
            with pytest.raises(TransientPublishError) as exc_info:
                await LinkedInAdapter(http_client=client).publish(
                    POST_TEXT, Credentials("tok", "urn:li:person:abc")
                )
        assert exc_info.value.code == "network_error"

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        async with mock_client(handler) as client:
            with pytest.raises(TransientPublishError) as exc_info:
                await LinkedInAdapter(http_client=client).publish(
                    POST_TEXT, Credentials("tok", "urn:li:person:abc")
                )
        assert exc_info.value.code == "timeout"


# =============================================================================
# Facebook / Instagram
# =============================================================================


class TestFacebookPublish:

    @pytest.mark.asyncio
    async def test_feed_post(self):
        def handler(request):
            if request.method == "POST" and request.url.path.endswith("/page-1/feed"):
                assert request.url.params["access_token"] == "page-token"
                return httpx.Response(200, json={"id": "page-1_99"})
            if request.method == "GET" and request.url.path.endswith("/page-1_99"):
                return httpx.Response(200, json={"permalink_url": "https://facebook.com/p/99"})
            return httpx.Response(404)

        async with mock_client(handler) as client:
            result = await FacebookPageAdapter(http_client=client).publish(
                POST_TEXT, Credentials("page-token", "page-1")
            )
        assert result.external_id == "page-1_99"
        assert result.published_url == "https://facebook.com/p/99"

    @pytest.mark.asyncio
    async def test_revoked_token_is_permanent(self):
        payload = {"error": {"code": 190, "message": "Session expired"}}
        async with mock_client(lambda r: httpx.Response(400, json=payload)) as client:
            with pytest.raises(PermanentPublishError) as exc_info:
                await FacebookPageAdapter(http_client=client).publish(
                    POST_TEXT, Credentials("page-token", "page-1")
                )
        assert exc_info.value.code == "auth_revoked"

    @pytest.mark.asyncio
    async def test_missing_page_id(self):
        with pytest.raises(PermanentPublishError, match="missing_page_id"):
            await FacebookPageAdapter().publish(POST_TEXT, Credentials("page-token", None))


class TestInstagramPublish:

    @pytest.mark.asyncio
    async def test_container_then_publish(self):
        calls = []

        def handler(request):
            calls.append((request.method, request.url.path))
            if request.url.path.endswith("/ig-1/media"):
                return httpx.Response(200, json={"id": "container-1"})
            if request.url.path.endswith("/ig-1/media_publish"):
                return httpx.Response(200, json={"id": "media-1"})
            if request.url.path.endswith("/media-1"):
                return httpx.Response(200, json={"permalink": "https://instagram.com/p/abc"})
            return httpx.Response(404)

        async with mock_client(handler) as client:
            result = await InstagramBusinessAdapter(http_client=client).publish(
                POST_TEXT, Credentials("page-token", "ig-1"), ["https://storage.test/img.png"]
            )

        assert result.external_id == "media-1"
        assert result.published_url == "https://instagram.com/p/abc"
        assert [method for method, _ in calls] == ["POST", "POST", "GET"]

    @pytest.mark.asyncio
    async def test_media_required(self):
        with pytest.raises(PermanentPublishError) as exc_info:
            await InstagramBusinessAdapter().publish(POST_TEXT, Credentials("page-token", "ig-1"), [])
        assert exc_info.value.code == "instagram_missing_media"


# =============================================================================
# YouTube
# =============================================================================


class TestYouTubePublish:

    DRAFT = {"title": "Launch recap", "description": "Walkthrough of the new release"}

    def _handler(self, final_status=200):
        def handler(request):
            if request.url.host == "storage.test":
                return httpx.Response(200, content=b"video-bytes", headers={"content-type": "video/mp4"})
            if request.method == "POST":
                body = json.loads(request.content)
                assert body["status"]["privacyStatus"] == "private"
                assert body["snippet"]["title"] == "Launch recap"
                return httpx.Response(200, headers={"Location": "https://upload.test/session-1"})
            if request.method == "PUT":
                assert request.content == b"video-bytes"
                if final_status == 308:
                    return httpx.Response(308)
                return httpx.Response(final_status, json={"id": "vid-1"})
            return httpx.Response(404)

        return handler

    @pytest.mark.asyncio
    async def test_private_upload(self):
        async with mock_client(self._handler()) as client:
            result = await YouTubeDraftAdapter(http_client=client).publish(
                self.DRAFT, Credentials("tok", "channel-1"), ["https://storage.test/clip.mp4"]
            )
        assert result.external_id == "vid-1"
        assert result.published_url == "https://www.youtube.com/watch?v=vid-1"

    @pytest.mark.asyncio
    async def test_incomplete_upload_is_transient(self):
        async with mock_client(self._handler(final_status=308)) as client:
            with pytest.raises(TransientPublishError, match="youtube_upload_incomplete"):
                await YouTubeDraftAdapter(http_client=client).publish(
                    self.DRAFT, Credentials("tok", "channel-1"), ["https://storage.test/clip.mp4"]
                )

    @pytest.mark.asyncio
    async def test_missing_media(self):
        with pytest.raises(PermanentPublishError, match="youtube_missing_media"):
            await YouTubeDraftAdapter().publish(self.DRAFT, Credentials("tok", "channel-1"), [])

    @pytest.mark.asyncio
    async def test_missing_asset_download_is_permanent(self):
        async with mock_client(lambda r: httpx.Response(404)) as client:
            with pytest.raises(PermanentPublishError) as exc_info:
                await YouTubeDraftAdapter(http_client=client).publish(
                    self.DRAFT, Credentials("tok", "channel-1"), ["https://storage.test/gone.mp4"]
                )
        assert exc_info.value.code == "media_download_failed"
