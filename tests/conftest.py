"""Shared fixtures: settings without latency, a scriptable provider client and graph builders."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from core.config import Settings
from models.nodes import WorkflowEdge, WorkflowNode
from services.execution import StatusBroadcaster, WorkflowExecutor
from services.llm import (
    Credential,
    GenerationResponse,
    ProviderError,
    ProviderPool,
    ResilienceContext,
    RetryPolicy,
)
from services.node_executor import NodeExecutor

NO_KEYS = dict(
    google_ai_api_key=None,
    gemini_api_key=None,
    google_generative_ai_api_key=None,
    openai_api_key=None,
    anthropic_api_key=None,
    openrouter_api_key=None,
    groq_api_key=None,
    huggingface_api_key=None,
)


def make_settings(**overrides) -> Settings:
    values = dict(NO_KEYS, node_latency_scale=0, ai_retry_delay=0, llm_simulation_mode=False)
    values.update(overrides)
    return Settings(_env_file=None, **values)


def rate_limited(provider: str = "gemini") -> ProviderError:
    return ProviderError("Gemini API error (429): Resource has been exhausted (e.g. check quota).",
                         provider=provider, status_code=429)


class FakeProviderClient:
    """Stands in for ProviderClient; outcomes are scripted per API key.

    An outcome is an exception to raise, a string to answer with, or a list
    of those consumed one per call (the last one repeats).
    """

    def __init__(self, outcomes: Optional[Dict[str, Any]] = None):
        self.outcomes = outcomes or {}
        self.calls: List[tuple] = []
        self.closed = False

    def calls_for(self, api_key: str) -> int:
        return sum(1 for key, _ in self.calls if key == api_key)

    async def generate(self, credential: Credential, request) -> GenerationResponse:
        self.calls.append((credential.api_key, request))
        outcome = self.outcomes.get(credential.api_key, f"reply from {credential.provider}")
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return GenerationResponse(text=outcome, model=request.model or "test-model",
                                  provider=credential.provider)

    async def aclose(self):
        self.closed = True


class SleepRecorder:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def node(node_id: str, node_type: str, **data) -> WorkflowNode:
    return WorkflowNode(id=node_id, type=node_type, data=data)


def edge(source: str, target: str, source_handle: str, target_handle: str) -> WorkflowEdge:
    return WorkflowEdge(
        id=f"{source}-{target}-{target_handle}",
        source=source,
        target=target,
        source_handle=source_handle,
        target_handle=target_handle,
    )


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def fake_client() -> FakeProviderClient:
    return FakeProviderClient()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def resilience_context() -> ResilienceContext:
    return ResilienceContext()


@pytest.fixture
def provider_pool(fake_client, resilience_context, sleep_recorder) -> ProviderPool:
    return ProviderPool(
        credentials=[Credential("gemini", "gemini-key-1", 10)],
        client=fake_client,
        context=resilience_context,
        retry_policy=RetryPolicy(),
        sleep=sleep_recorder,
    )


@pytest.fixture
def node_executor(provider_pool, settings) -> NodeExecutor:
    return NodeExecutor(provider_pool=provider_pool, settings=settings)


@pytest.fixture
def broadcaster() -> StatusBroadcaster:
    return StatusBroadcaster(queue_size=100)


@pytest.fixture
def workflow_executor(node_executor, broadcaster) -> WorkflowExecutor:
    return WorkflowExecutor(node_executor=node_executor, broadcaster=broadcaster)


class GatedNodeExecutor:
    """Wraps a NodeExecutor and holds every node until released.

    ``start_order`` records node ids as they are dispatched.
    """

    def __init__(self, inner: NodeExecutor):
        self.inner = inner
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.start_order: List[str] = []

    async def execute(self, node, inputs):
        self.start_order.append(node.id)
        self.started.set()
        await self.release.wait()
        return await self.inner.execute(node, inputs)
