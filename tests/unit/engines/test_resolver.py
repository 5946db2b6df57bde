"""Unit tests for EngineResolver, ModelManager and ManagedEngine."""

import asyncio
import json
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from mail_inference.engines.base import read_stream
from mail_inference.engines.classifier_engine import ClassifierEngine
from mail_inference.engines.exceptions import EngineConnectionError
from mail_inference.engines.managed_engine import ManagedEngine
from mail_inference.engines.model_manager import ModelManager
from mail_inference.engines.ollama_engine import OllamaEngine
from mail_inference.engines.resolver import EngineResolver
from mail_inference.engines.stub_engine import StubEngine


class FakeOllama:
    """Routes MockTransport requests and records them."""
    
    def __init__(self, installed=("qwen2.5:3b",), running=()):
        self.installed = list(installed)
        self.running = list(running)
        self.requests: list[tuple[str, dict]] = []
    
    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content) if request.content else {}
        self.requests.append((request.url.path, payload))
        if request.url.path == "/api/tags":
            return httpx.Response(200, json={"models": [{"name": n} for n in self.installed]})
        if request.url.path == "/api/ps":
            return httpx.Response(200, json={"models": [{"name": n} for n in self.running]})
        if request.url.path == "/api/generate" and "prompt" not in payload:
            self.running.append(payload["model"])
            return httpx.Response(200, json={"done": True})
        if request.url.path == "/api/generate" and payload.get("stream"):
            return httpx.Response(200, content=b'{"response": "ok", "done": true}\n')
        if request.url.path == "/api/generate":
            return httpx.Response(200, json={"response": '{"label": "primary"}'})
        return httpx.Response(404)
    
    def paths(self) -> list[str]:
        return [path for path, _ in self.requests]
    
    def loads(self) -> int:
        return sum(1 for path, p in self.requests if path == "/api/generate" and "prompt" not in p)


def make_ollama(daemon: FakeOllama) -> OllamaEngine:
    return OllamaEngine(
        base_url="http://ollama.test",
        model="qwen2.5:3b",
        max_retries=1,
        transport=httpx.MockTransport(daemon),
    )


class KeywordClassifier:
    def predict(self, text, labels):
        return labels[0]


class TestModelManager:
    """Install/load probes and lazy loading."""
    
    @pytest.mark.asyncio
    async def test_probes(self):
        daemon = FakeOllama(installed=["qwen2.5:3b"], running=[])
        manager = ModelManager(make_ollama(daemon))
        
        assert await manager.is_installed() is True
        assert await manager.is_loaded() is False
    
    @pytest.mark.asyncio
    async def test_probe_errors_mean_not_installed(self):
        engine = Mock(spec=OllamaEngine)
        engine.model = "qwen2.5:3b"
        engine.list_models = AsyncMock(side_effect=EngineConnectionError("down"))
        engine.running_models = AsyncMock(side_effect=EngineConnectionError("down"))
        manager = ModelManager(engine)
        
        assert await manager.is_installed() is False
        assert await manager.is_loaded() is False
    
    @pytest.mark.asyncio
    async def test_concurrent_ensure_loaded_loads_once(self):
        daemon = FakeOllama(running=[])
        manager = ModelManager(make_ollama(daemon))
        
        await asyncio.gather(*(manager.ensure_loaded() for _ in range(5)))
        
        assert daemon.loads() == 1
        assert await manager.is_loaded() is True


class TestEngineResolver:
    """Probe order and memoization."""
    
    @pytest.mark.asyncio
    async def test_loaded_model_resolves_to_primary(self):
        daemon = FakeOllama(running=["qwen2.5:3b"])
        primary = make_ollama(daemon)
        resolver = EngineResolver(primary=primary)
        
        engine = await resolver.resolve_generative_engine()
        
        assert engine is primary
    
    @pytest.mark.asyncio
    async def test_installed_not_loaded_resolves_to_managed(self):
        daemon = FakeOllama(running=[])
        resolver = EngineResolver(primary=make_ollama(daemon))
        
        engine = await resolver.resolve_generative_engine()
        
        assert isinstance(engine, ManagedEngine)
        assert await engine.is_available() is True
    
    @pytest.mark.asyncio
    async def test_missing_model_falls_back_to_classifier(self):
        daemon = FakeOllama(installed=[])
        classifier = ClassifierEngine(KeywordClassifier())
        resolver = EngineResolver(primary=make_ollama(daemon), classifier=classifier)
        
        assert await resolver.resolve_generative_engine() is classifier
    
    @pytest.mark.asyncio
    async def test_nothing_configured_resolves_to_stub(self):
        engine = await EngineResolver().resolve_generative_engine()
        
        assert isinstance(engine, StubEngine)
        assert await engine.is_available() is False
    
    @pytest.mark.asyncio
    async def test_daemon_down_resolves_to_stub(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")
        
        primary = OllamaEngine(base_url="http://ollama.test", max_retries=1, transport=httpx.MockTransport(handler))
        engine = await EngineResolver(primary=primary).resolve_generative_engine()
        
        assert isinstance(engine, StubEngine)
    
    @pytest.mark.asyncio
    async def test_memoized_and_probed_once(self):
        daemon = FakeOllama(running=["qwen2.5:3b"])
        resolver = EngineResolver(primary=make_ollama(daemon))
        
        engines = await asyncio.gather(*(resolver.resolve_generative_engine() for _ in range(5)))
        await resolver.resolve_generative_engine()
        
        assert all(e is engines[0] for e in engines)
        assert daemon.paths().count("/api/tags") == 1
    
    @pytest.mark.asyncio
    async def test_invalidate_reprobes(self):
        daemon = FakeOllama(installed=[])
        primary = make_ollama(daemon)
        resolver = EngineResolver(primary=primary)
        assert isinstance(await resolver.resolve_generative_engine(), StubEngine)
        
        daemon.installed.append("qwen2.5:3b")
        daemon.running.append("qwen2.5:3b")
        resolver.invalidate()
        
        assert await resolver.resolve_generative_engine() is primary
    
    @pytest.mark.asyncio
    async def test_classifier_engine_or_stub(self):
        classifier = ClassifierEngine(KeywordClassifier())
        
        assert await EngineResolver(classifier=classifier).resolve_classifier_engine() is classifier
        assert isinstance(await EngineResolver().resolve_classifier_engine(), StubEngine)


class TestManagedEngine:
    """Lazy load before first use, shared serialization."""
    
    @pytest.mark.asyncio
    async def test_loads_before_first_call_only(self):
        daemon = FakeOllama(running=[])
        primary = make_ollama(daemon)
        managed = ManagedEngine(primary, ModelManager(primary))
        
        assert await managed.classify("text", ["primary", "social"]) == "primary"
        assert await read_stream(managed.generate("p", max_tokens=5)) == "ok"
        
        assert daemon.loads() == 1
        load_index = next(
            i for i, (path, p) in enumerate(daemon.requests)
            if path == "/api/generate" and "prompt" not in p
        )
        first_inference = next(
            i for i, (path, p) in enumerate(daemon.requests)
            if path == "/api/generate" and "prompt" in p
        )
        assert load_index < first_inference
    
    def test_shares_primary_lock(self):
        primary = make_ollama(FakeOllama())
        managed = ManagedEngine(primary, ModelManager(primary))
        
        assert managed.lock is primary.lock
        assert managed.capabilities == primary.capabilities
    
    @pytest.mark.asyncio
    async def test_early_stop_closes_primary_stream_under_lock(self, monkeypatch):
        primary = make_ollama(FakeOllama(running=["qwen2.5:3b"]))
        closed_under_lock = []
        
        async def endless(prompt, max_tokens):
            try:
                while True:
                    yield "word "
            finally:
                closed_under_lock.append(primary.lock.locked())
        
        monkeypatch.setattr(primary, "_generate", endless)
        managed = ManagedEngine(primary, ModelManager(primary))
        
        await read_stream(managed.generate("p", max_tokens=100), char_budget=12)
        
        assert closed_under_lock == [True]
        assert not primary.lock.locked()


class TestResolverReprobe:
    """A memoized fallback is re-checked once the re-probe interval passes."""
    
    @pytest.mark.asyncio
    async def test_late_daemon_replaces_stub(self):
        now = [0.0]
        daemon = FakeOllama(installed=[])
        primary = make_ollama(daemon)
        resolver = EngineResolver(primary=primary, reprobe_interval=30.0, clock=lambda: now[0])
        assert isinstance(await resolver.resolve_generative_engine(), StubEngine)
        
        daemon.installed.append("qwen2.5:3b")
        daemon.running.append("qwen2.5:3b")
        now[0] = 10.0
        assert isinstance(await resolver.resolve_generative_engine(), StubEngine)
        
        now[0] = 31.0
        assert await resolver.resolve_generative_engine() is primary
    
    @pytest.mark.asyncio
    async def test_no_reprobe_within_interval(self):
        now = [0.0]
        daemon = FakeOllama(installed=[])
        resolver = EngineResolver(primary=make_ollama(daemon), clock=lambda: now[0])
        
        for step in range(5):
            now[0] = float(step)
            await resolver.resolve_generative_engine()
        
        assert daemon.paths().count("/api/tags") == 1
    
    @pytest.mark.asyncio
    async def test_resolved_primary_is_never_reprobed(self):
        now = [0.0]
        daemon = FakeOllama(running=["qwen2.5:3b"])
        primary = make_ollama(daemon)
        resolver = EngineResolver(primary=primary, reprobe_interval=1.0, clock=lambda: now[0])
        await resolver.resolve_generative_engine()
        
        now[0] = 100.0
        
        assert await resolver.resolve_generative_engine() is primary
        assert daemon.paths().count("/api/tags") == 1
    
    @pytest.mark.asyncio
    async def test_stub_without_primary_stays_memoized(self):
        now = [0.0]
        resolver = EngineResolver(reprobe_interval=0.0, clock=lambda: now[0])
        stub = await resolver.resolve_generative_engine()
        
        now[0] = 100.0
        
        assert await resolver.resolve_generative_engine() is stub
