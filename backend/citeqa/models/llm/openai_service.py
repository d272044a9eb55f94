# backend/citeqa/models/llm/openai_service.py

from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

import httpx

from citeqa.core.entities import ChatMessage, CitationAnnotation, ServiceAnswer
from citeqa.core.errors import ConfigurationError, ServiceError
from citeqa.core.ports.completion import BUILDING, COMPLETED, FAILED, INDEXING, ICompletionService

logger = logging.getLogger("citeqa.llm.openai")

_FAILED_FILE_STATES = {"failed", "cancelled"}


def _as_dicts(messages: List[ChatMessage]) -> List[Dict[str, str]]:
    return [{"role": m.role, "content": m.content} for m in messages]


def fold_file_states(states: List[str]) -> str:
    """Collapse per-file indexing states into one index state."""
    if not states:
        return BUILDING
    if any(s in _FAILED_FILE_STATES for s in states):
        return FAILED
    if all(s == COMPLETED for s in states):
        return COMPLETED
    return INDEXING


def extract_response(data: Dict[str, Any]) -> ServiceAnswer:
    """Pull output text and citations out of a Responses API body."""
    texts: List[str] = []
    citations: List[CitationAnnotation] = []
    results: List[CitationAnnotation] = []

    for item in data.get("output") or []:
        kind = item.get("type")
        if kind == "message":
            for part in item.get("content") or []:
                if part.get("type") != "output_text":
                    continue
                texts.append(part.get("text") or "")
                for ann in part.get("annotations") or []:
                    if ann.get("type") != "file_citation" or not ann.get("file_id"):
                        continue
                    quote = ann.get("quote") or ann.get("text") or ""
                    if quote.strip():
                        citations.append(CitationAnnotation(document_id=ann["file_id"], quote_text=quote))
        elif kind == "file_search_call":
            for res in item.get("results") or []:
                if res.get("file_id") and (res.get("text") or "").strip():
                    results.append(CitationAnnotation(document_id=res["file_id"], quote_text=res["text"]))

    return ServiceAnswer(text="".join(texts).strip(), citations=citations + results)


class OpenAICompletionService(ICompletionService):
    """
    OpenAI-compatible adapter: vector stores for indexing, the Responses API with
    file_search for scoped queries, chat completions for everything else.
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.openai.com/v1/",
        default_model: str = "gpt-4o-mini",
        temperature: float = 0.2,
        timeout: float = 120.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.default_model = default_model
        self.temperature = temperature
        self.timeout = timeout
        self._client = client

    def _http(self) -> httpx.AsyncClient:
        if not self.api_key:
            raise ConfigurationError("Missing OPENAI_API_KEY")
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "OpenAI-Beta": "assistants=v2"}

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        client = self._http()
        try:
            resp = await client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"❌ Completion service unreachable: {e}")
            raise ServiceError(502, str(e)) from e
        if resp.status_code >= 400:
            logger.error(f"❌ LLM ERROR {resp.status_code}: {resp.text}")
            raise ServiceError(resp.status_code, resp.text)
        return resp.json()

    async def create_index(self, name: str) -> str:
        data = await self._request("POST", "vector_stores", json={"name": name})
        return data["id"]

    async def upload_document(self, filename: str, content: bytes) -> str:
        data = await self._request(
            "POST", "files",
            data={"purpose": "assistants"},
            files={"file": (filename, content, "text/plain")},
        )
        return data["id"]

    async def attach(self, index_id: str, document_ids: List[str]) -> None:
        await self._request("POST", f"vector_stores/{index_id}/file_batches", json={"file_ids": document_ids})

    async def index_status(self, index_id: str) -> str:
        data = await self._request("GET", f"vector_stores/{index_id}/files", params={"limit": 100})
        return fold_file_states([f.get("status", "") for f in data.get("data") or []])

    async def query(
        self, scope: List[str], messages: List[ChatMessage], model: Optional[str] = None
    ) -> ServiceAnswer:
        body = {
            "model": model or self.default_model,
            "input": _as_dicts(messages),
            "tools": [{"type": "file_search", "vector_store_ids": scope}],
            "include": ["file_search_call.results"],
        }
        data = await self._request("POST", "responses", json=body)
        answer = extract_response(data)
        logger.info(f"🔎 Scoped query over {len(scope)} index(es) -> {len(answer.citations)} citations")
        return answer

    async def direct_completion(self, messages: List[ChatMessage], model: Optional[str] = None) -> str:
        body = {
            "model": model or self.default_model,
            "messages": _as_dicts(messages),
            "temperature": self.temperature,
        }
        data = await self._request("POST", "chat/completions", json=body)
        choices = data.get("choices") or [{}]
        return ((choices[0].get("message") or {}).get("content") or "").strip()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
