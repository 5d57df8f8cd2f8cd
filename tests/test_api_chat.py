# =============================================================================
# API Tests — POST /chat & GET /health
# =============================================================================
#
# FastAPI TestClient with the pipeline and message store swapped through
# app.dependency_overrides. No database, no model API.
#
# Test groups:
#   1. Framing — NDJSON by default, SSE on Accept: text/event-stream
#   2. Errors before the stream — 400, 401, 422, 502, 503
#   3. History & persistence — store lookups and the background save
# =============================================================================

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

from finchat.agents.orchestrator import EvidenceDeps
from finchat.agents.pipeline import TurnPipeline
from finchat.api.deps import get_message_store, get_pipeline
from finchat.config import settings
from finchat.main import app
from finchat.services.ticker_resolver import TickerResolver
from tests.fakes import FakeEngine, ScriptedLLM

ROUTER = "You are the router of a financial assistant"

CLASSIFICATION = {
    "reasoning": "greeting",
    "reasoningInSimpleLanguageAddressedAtUser": "Just saying hello",
}
ANSWER = {
    "answer": "Hello! Ask me about any stock, ETF or investor.",
    "type": "text",
    "chartType": "None",
    "chartData": [],
    "chatTitle": None,
    "followUpQuestions": [],
    "tickersToDisplay": [],
    "usernamesToDisplay": [],
    "displayPreference": "none",
}
BODY = {"id": "conv-1", "prompt": "Hello there"}


def _pipeline(llm: ScriptedLLM | None = None, llm_for_stage=None) -> TurnPipeline:
    llm = llm or ScriptedLLM(replies=[(ROUTER, CLASSIFICATION)], stream_reply=ANSWER)
    engine = FakeEngine()
    return TurnPipeline(EvidenceDeps(
        evidence_engine=engine,
        resolver=TickerResolver(engine),
        portfolio_fetcher=MagicMock(),
        market_tools=[],
        llm_for_stage=llm_for_stage or (lambda stage: llm),
    ))


def _store(history=None) -> MagicMock:
    store = MagicMock()
    store.history_tail = AsyncMock(return_value=history or [])
    store.save_turn = AsyncMock()
    return store


class _ApiTest:
    def setup_method(self):
        self.store = _store()
        self.use(_pipeline())
        app.dependency_overrides[get_message_store] = lambda: self.store
        self.client = TestClient(app)

    def teardown_method(self):
        app.dependency_overrides.clear()

    def use(self, pipeline: TurnPipeline) -> None:
        app.dependency_overrides[get_pipeline] = lambda: pipeline


# ---------------------------------------------------------------------------
# 1. Framing
# ---------------------------------------------------------------------------


class TestHealth(_ApiTest):
    def test_health(self):
        response = self.client.get("/health")
        assert response.status_code == 200
        assert response.json() == {
            "status": "ok", "version": settings.app_version, "service": settings.app_name,
        }


class TestFraming(_ApiTest):
    def test_ndjson_by_default(self):
        response = self.client.post("/chat", json=BODY)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")
        events = [json.loads(line) for line in response.text.splitlines() if line]
        assert events[0] == {
            "kind": "status-update", "subtype": "classification",
            "text": "Identifying what data I need...",
        }
        assert events[1]["text"] == "Just saying hello"
        assert events[-1]["kind"] == "answer-complete"
        assert events[-1]["answer"]["answer"] == ANSWER["answer"]

    def test_sse_when_requested(self):
        response = self.client.post("/chat", json=BODY, headers={"Accept": "text/event-stream"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        frames = [frame for frame in response.text.split("\n\n") if frame]
        assert frames[0].startswith("event: status-update\ndata: ")
        assert frames[-1].startswith("event: answer-complete\n")
        payload = json.loads(frames[-1].split("data: ", 1)[1])
        assert payload["answer"]["displayPreference"] == "none"

    def test_synthesis_failure_is_last_fragment(self):
        llm = ScriptedLLM(
            replies=[(ROUTER, CLASSIFICATION)], stream_reply=ANSWER, stream_error=ConnectionError("reset"),
        )
        self.use(_pipeline(llm))
        response = self.client.post("/chat", json=BODY)

        events = [json.loads(line) for line in response.text.splitlines() if line]
        assert events[-1] == {
            "kind": "error",
            "code": "synthesis_failed",
            "message": "The answer could not be completed. Please try again.",
        }


# ---------------------------------------------------------------------------
# 2. Errors before the stream
# ---------------------------------------------------------------------------


class TestErrors(_ApiTest):
    def test_missing_prompt_is_422(self):
        assert self.client.post("/chat", json={"id": "conv-1"}).status_code == 422

    def test_empty_prompt_is_422(self):
        assert self.client.post("/chat", json={"id": "conv-1", "prompt": ""}).status_code == 422

    def test_bad_history_role_is_422(self):
        body = dict(BODY, history=[{"role": "system", "content": "x"}])
        assert self.client.post("/chat", json=body).status_code == 422

    def test_classification_failure_is_502(self):
        self.use(_pipeline(ScriptedLLM(replies=[(ROUTER, "definitely not JSON")])))
        response = self.client.post("/chat", json=BODY)

        assert response.status_code == 502
        assert response.json()["detail"]["code"] == "classification_failed"
        self.store.save_turn.assert_not_awaited()

    def test_missing_model_config_is_503(self):
        def llm_for_stage(stage):
            raise ValueError("ANTHROPIC_API_KEY is not set")

        self.use(_pipeline(llm_for_stage=llm_for_stage))
        assert self.client.post("/chat", json=BODY).status_code == 503

    def test_unknown_chat_model_is_400(self):
        body = dict(BODY, selected_chat_model="no-slash-here")
        assert self.client.post("/chat", json=body).status_code == 400


class TestAuth(_ApiTest):
    def test_missing_token_is_401(self):
        with patch.object(settings, "auth_enabled", True):
            response = self.client.post("/chat", json=BODY)
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_unknown_token_is_401(self):
        with patch.object(settings, "auth_enabled", True), \
                patch.object(settings, "api_tokens", {"secret-token": "Internal Token"}):
            response = self.client.post(
                "/chat", json=BODY, headers={"Authorization": "Bearer wrong-token"},
            )
        assert response.status_code == 401

    def test_known_token_streams(self):
        with patch.object(settings, "auth_enabled", True), \
                patch.object(settings, "api_tokens", {"secret-token": "Internal Token"}):
            response = self.client.post(
                "/chat", json=BODY, headers={"Authorization": "Bearer secret-token"},
            )
        assert response.status_code == 200


# ---------------------------------------------------------------------------
# 3. History & persistence
# ---------------------------------------------------------------------------


class TestHistoryAndPersistence(_ApiTest):
    def test_history_loaded_from_store(self):
        self.store.history_tail = AsyncMock(return_value=[{"role": "user", "content": "Earlier question"}])
        llm = ScriptedLLM(replies=[(ROUTER, CLASSIFICATION)], stream_reply=ANSWER)
        self.use(_pipeline(llm))

        self.client.post("/chat", json=BODY)

        self.store.history_tail.assert_awaited_once_with("conv-1")
        assert "Earlier question" in llm.calls_for(ROUTER)[0]["haystack"]

    def test_history_from_body_skips_store(self):
        body = dict(BODY, history=[{"role": "assistant", "content": "Hi, how can I help?"}])
        self.client.post("/chat", json=body)
        self.store.history_tail.assert_not_awaited()

    def test_store_failure_means_empty_history(self):
        self.store.history_tail = AsyncMock(side_effect=RuntimeError("db down"))
        assert self.client.post("/chat", json=BODY).status_code == 200

    def test_completed_turn_is_saved(self):
        self.client.post("/chat", json=BODY)

        self.store.save_turn.assert_awaited_once()
        record = self.store.save_turn.await_args.args[0]
        assert record.conversation_id == "conv-1"
        assert record.status == "completed"
        assert record.answer_text == ANSWER["answer"]

    def test_failed_turn_saved_with_error_code(self):
        llm = ScriptedLLM(
            replies=[(ROUTER, CLASSIFICATION)], stream_reply=ANSWER, stream_error=ConnectionError("reset"),
        )
        self.use(_pipeline(llm))
        self.client.post("/chat", json=BODY)

        record = self.store.save_turn.await_args.args[0]
        assert record.status == "error"
        assert record.error_code == "synthesis_failed"
        assert record.answer_text is None
