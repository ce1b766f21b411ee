import json
from datetime import datetime, timezone

import httpx
import pytest

from pacer.apps.services.advice import LLMAdviceService, RateLimiter, build_advice_service
from pacer.libs.errors import FallbackReason, TransientServiceError
from pacer.libs.llm_router import LLMRouter, OpenRouterProvider
from pacer.libs.schemas.focus import DueDate
from pacer.libs.schemas.settings import AppSettings

NOON = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _completion(content):
    return {
        "model": "test-model",
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 20},
    }


def _service(handler, *, limiter=None):
    seen = []

    def recording(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return handler(request)

    router = LLMRouter()
    router.register_provider(
        "openrouter",
        OpenRouterProvider("test-key", transport=httpx.MockTransport(recording)),
    )
    service = LLMAdviceService(router, model="test-model", rate_limiter=limiter, clock=lambda: NOON)
    return service, seen


@pytest.mark.asyncio
async def test_parse_returns_validated_tasks():
    body = '```json\n[{"id": "task_1", "text": " Buy milk "}, {"id": 2, "text": "Call mom"},]\n```'
    service, seen = _service(lambda request: httpx.Response(200, json=_completion(body)))

    result = await service.parse("buy milk and call mom")

    assert [task.text for task in result.tasks] == ["Buy milk", "Call mom"]
    assert all(task.id.startswith("task_") for task in result.tasks)
    assert result.ai_used
    request = seen[0]
    assert request["model"] == "test-model"
    assert request["messages"][0]["role"] == "system"
    assert "buy milk and call mom" in request["messages"][1]["content"]


@pytest.mark.asyncio
async def test_parse_caps_input_and_task_count():
    items = [{"text": f"task {i}"} for i in range(12)]
    service, seen = _service(lambda request: httpx.Response(200, json=_completion(json.dumps(items))))

    result = await service.parse("x" * 5000)

    assert len(result.tasks) == 8
    assert "x" * 2001 not in seen[0]["messages"][1]["content"]


@pytest.mark.asyncio
async def test_breakdown_maps_step_fields():
    steps = [
        {"id": "step_1", "text": "Open the doc", "dueBy": "Now", "timeEstimate": "2 min"},
        {"id": "step_2", "text": "Write the intro", "dueBy": None, "timeEstimate": "10 min"},
    ]
    service, seen = _service(lambda request: httpx.Response(200, json=_completion(json.dumps(steps))))

    result = await service.breakdown("Write report", DueDate.TODAY, "low")

    assert [(s.text, s.due_by, s.time_estimate) for s in result.steps] == [
        ("Open the doc", "Now", "2 min"),
        ("Write the intro", None, "10 min"),
    ]
    assert all(not s.completed for s in result.steps)
    prompt = seen[0]["messages"][1]["content"]
    assert "Due TODAY. Current time: afternoon." in prompt
    assert "User energy is LOW" in prompt


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,reason",
    [(429, FallbackReason.RATE_LIMITED), (500, FallbackReason.API_ERROR), (401, FallbackReason.API_ERROR)],
)
async def test_http_failures_map_to_reasons(status, reason):
    service, _ = _service(lambda request: httpx.Response(status, json={"error": "nope"}))

    with pytest.raises(TransientServiceError) as excinfo:
        await service.parse("buy milk")
    assert excinfo.value.reason == reason


@pytest.mark.asyncio
async def test_network_error_is_api_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    service, _ = _service(handler)

    with pytest.raises(TransientServiceError) as excinfo:
        await service.breakdown("Write report", DueDate.NO_RUSH, "medium")
    assert excinfo.value.reason == FallbackReason.API_ERROR


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "content",
    [
        "Sure! Here are your tasks.",
        '{"tasks": ["not", "an", "array"]}',
        '[{"id": "task_1"}]',
        "[]",
    ],
)
async def test_unusable_content_is_parse_error(content):
    service, _ = _service(lambda request: httpx.Response(200, json=_completion(content)))

    with pytest.raises(TransientServiceError) as excinfo:
        await service.parse("buy milk")
    assert excinfo.value.reason == FallbackReason.PARSE_ERROR


@pytest.mark.asyncio
async def test_missing_key_reports_no_api_key(monkeypatch):
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    monkeypatch.delenv("PACER_OPENROUTER_API_KEY", raising=False)
    service = build_advice_service(AppSettings(_env_file=None))

    with pytest.raises(TransientServiceError) as excinfo:
        await service.parse("buy milk")
    assert excinfo.value.reason == FallbackReason.NO_API_KEY


@pytest.mark.asyncio
async def test_configured_key_registers_provider(monkeypatch):
    monkeypatch.setenv("PACER_OPENROUTER_API_KEY", "sk-test")
    monkeypatch.setenv("PACER_ADVICE_RATE_LIMIT_PER_MINUTE", "0")
    service = build_advice_service(AppSettings(_env_file=None))

    # The provider is wired, so the call reaches the local limiter instead of failing on the key.
    with pytest.raises(TransientServiceError) as excinfo:
        await service.parse("buy milk")
    assert excinfo.value.reason == FallbackReason.RATE_LIMITED


@pytest.mark.asyncio
async def test_local_limiter_blocks_before_provider():
    limiter = RateLimiter(max_calls=1)
    service, seen = _service(
        lambda request: httpx.Response(200, json=_completion('[{"text": "Buy milk"}]')),
        limiter=limiter,
    )

    await service.parse("buy milk")
    with pytest.raises(TransientServiceError) as excinfo:
        await service.parse("buy milk")

    assert excinfo.value.reason == FallbackReason.RATE_LIMITED
    assert len(seen) == 1


def test_rate_limiter_window_slides():
    now = [0.0]
    limiter = RateLimiter(max_calls=2, window_seconds=60, clock=lambda: now[0])

    assert limiter.try_acquire()
    now[0] = 30
    assert limiter.try_acquire()
    assert not limiter.try_acquire()
    assert limiter.remaining == 0

    now[0] = 60
    assert limiter.remaining == 1
    assert limiter.try_acquire()


@pytest.mark.asyncio
async def test_router_fails_over_in_policy_order():
    calls = []

    def failing(request):
        calls.append("primary")
        return httpx.Response(503, text="unavailable")

    def healthy(request):
        calls.append("backup")
        return httpx.Response(200, json=_completion('[{"text": "Buy milk"}]'))

    router = LLMRouter()
    router.register_provider("backup", OpenRouterProvider("k2", transport=httpx.MockTransport(healthy)))
    router.register_provider("primary", OpenRouterProvider("k1", transport=httpx.MockTransport(failing)))
    router.set_policy(["primary", "backup"])

    response = await router.chat(messages=[{"role": "user", "content": "hi"}], model="test-model")

    assert calls == ["primary", "backup"]
    assert response.text == '[{"text": "Buy milk"}]'
    with pytest.raises(ValueError):
        router.set_policy([])
