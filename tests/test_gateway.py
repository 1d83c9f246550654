import json
from types import SimpleNamespace

import groq
import httpx
import pytest

from app.core.config import settings
from app.core.exceptions import NonRetryableError, RetryableError
from app.services.avatar import AvatarService
from app.services.compositor import CompositionService
from app.services.gateway import ServiceGateway, is_fetchable_url
from app.services.script_llm import ScriptService


def transport(handler):
    requests = []

    def recorder(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    mock = httpx.MockTransport(recorder)
    mock.requests = requests
    return mock


# URL resolution

@pytest.mark.parametrize("url, expected", [
    ("https://cdn.example.com/a.mp4", True),
    ("http://localhost:8000/files/a.png", True),
    ("blob:http://localhost/1234", False),
    ("file:///tmp/a.png", False),
    ("a.png", False),
    ("", False),
    (None, False),
])
def test_is_fetchable_url(url, expected):
    assert is_fetchable_url(url) is expected


def test_resolve_media_url_substitutes_default():
    assert ServiceGateway.resolve_media_url("blob:abc", "https://d/x.mp4") == "https://d/x.mp4"
    assert ServiceGateway.resolve_media_url(None, "https://d/x.mp4") == "https://d/x.mp4"
    assert ServiceGateway.resolve_media_url(" https://a/b.mp4 ", "https://d/x.mp4") == "https://a/b.mp4"


# Avatar synthesis

async def test_avatar_start_sends_payload():
    mock = transport(lambda request: httpx.Response(200, json={"job_id": "job-42"}))
    service = AvatarService(transport=mock)

    job_id = await service.start("Hello there.", "voice-1", "https://cdn.example.com/face.png", "512")

    assert job_id == "job-42"
    request = mock.requests[0]
    assert request.method == "POST"
    assert request.url.path.endswith("/generate")
    body = json.loads(request.content)
    assert body["img_url"] == "https://cdn.example.com/face.png"
    assert body["text"] == "Hello there."
    assert body["voice_id"] == "voice-1"
    assert body["resolution"] == "512"


async def test_avatar_start_without_job_id_is_not_retryable():
    service = AvatarService(transport=transport(lambda request: httpx.Response(200, json={})))

    with pytest.raises(NonRetryableError):
        await service.start("Hello.", "voice-1", "https://cdn.example.com/face.png", "320")


async def test_avatar_start_missing_fields():
    service = AvatarService(transport=transport(lambda request: httpx.Response(200, json={"job_id": "x"})))

    with pytest.raises(NonRetryableError, match="voice_id"):
        await service.start("Hello.", "", "https://cdn.example.com/face.png", "320")


async def test_server_error_is_retryable():
    service = AvatarService(transport=transport(lambda request: httpx.Response(503, text="busy")))

    with pytest.raises(RetryableError) as exc_info:
        await service.start("Hello.", "voice-1", "https://cdn.example.com/face.png", "320")
    assert exc_info.value.details["status_code"] == 503


async def test_network_error_is_retryable():
    def fail(request):
        raise httpx.ConnectError("connection refused", request=request)

    service = AvatarService(transport=transport(fail))

    with pytest.raises(RetryableError):
        await service.poll("job-1")


async def test_avatar_poll_states():
    responses = iter([
        {"status": "processing"},
        {"status": "completed", "video_url": "https://cdn.example.com/avatar.mp4"},
    ])
    service = AvatarService(transport=transport(lambda request: httpx.Response(200, json=next(responses))))

    pending = await service.poll("job-1")
    done = await service.poll("job-1")

    assert not pending.completed and pending.status == "processing"
    assert done.completed and done.video_url == "https://cdn.example.com/avatar.mp4"


async def test_avatar_poll_failed_render():
    service = AvatarService(transport=transport(lambda request: httpx.Response(200, json={"status": "failed"})))

    with pytest.raises(NonRetryableError):
        await service.poll("job-1")


# Composition

async def test_composition_start_reads_render_list():
    mock = transport(lambda request: httpx.Response(202, json=[{"id": "render-7", "status": "planned"}]))
    service = CompositionService(transport=mock)

    render_id = await service.start("https://cdn.example.com/avatar.mp4", "https://cdn.example.com/b.mp4")

    assert render_id == "render-7"
    body = json.loads(mock.requests[0].content)
    assert body["template_id"] == settings.COMPOSITOR_TEMPLATE_ID
    assert body["modifications"] == {
        "anchor": "https://cdn.example.com/avatar.mp4",
        "supporting_video": "https://cdn.example.com/b.mp4",
    }


async def test_composition_poll_carries_duration():
    payload = {"status": "succeeded", "url": "https://cdn.example.com/final.mp4", "duration": "42.5"}
    service = CompositionService(transport=transport(lambda request: httpx.Response(200, json=payload)))

    status = await service.poll("render-7")

    assert status.completed
    assert status.url == "https://cdn.example.com/final.mp4"
    assert status.duration_seconds == 42.5


async def test_composition_poll_without_duration():
    payload = {"status": "succeeded", "url": "https://cdn.example.com/final.mp4"}
    service = CompositionService(transport=transport(lambda request: httpx.Response(200, json=payload)))

    assert (await service.poll("render-7")).duration_seconds is None


async def test_gateway_resolves_supporting_media_before_composition():
    mock = transport(lambda request: httpx.Response(200, json={"id": "render-1"}))
    gateway = ServiceGateway(composition_service=CompositionService(transport=mock))

    await gateway.start_composition("https://cdn.example.com/avatar.mp4", "file:///tmp/local.mp4")

    body = json.loads(mock.requests[0].content)
    assert body["modifications"]["supporting_video"] == settings.DEFAULT_SUPPORTING_MEDIA_URL


async def test_gateway_resolves_portrait_before_synthesis():
    mock = transport(lambda request: httpx.Response(200, json={"job_id": "job-1"}))
    gateway = ServiceGateway(avatar_service=AvatarService(transport=mock))

    await gateway.start_avatar_synthesis("Hi.", "voice-1", None, "320")

    assert json.loads(mock.requests[0].content)["img_url"] == settings.DEFAULT_PORTRAIT_URL


# Script generation

class FakeCompletions:
    def __init__(self, result):
        self.result = result
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def fake_groq(result):
    completions = FakeCompletions(result)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


async def test_generate_script():
    client, completions = fake_groq(completion("  Breathe in. Breathe out.  "))

    script = await ScriptService(client=client).generate_script("mindfulness")

    assert script == "Breathe in. Breathe out."
    assert "mindfulness" in completions.calls[0]["messages"][1]["content"]
    assert completions.calls[0]["max_tokens"] == settings.SCRIPT_MAX_TOKENS


async def test_generate_script_empty_response_is_retryable():
    client, _ = fake_groq(completion(""))

    with pytest.raises(RetryableError):
        await ScriptService(client=client).generate_script("mindfulness")


async def test_generate_script_api_error_is_retryable():
    request = httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")
    client, _ = fake_groq(groq.APIConnectionError(request=request))

    with pytest.raises(RetryableError):
        await ScriptService(client=client).generate_script("mindfulness")


async def test_generate_script_requires_topic():
    client, completions = fake_groq(completion("unused"))

    with pytest.raises(NonRetryableError):
        await ScriptService(client=client).generate_script("   ")
    assert completions.calls == []
