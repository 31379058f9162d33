"""chat 族后端适配器。

本模块负责：

1. 接收统一的 OperationRequest（params["text"] + history 快照）。
2. 转换为各上游的请求格式（OpenAI 兼容 / Blackbox / HF Inference）。
3. 把响应解析为统一的 OperationResult(data={"response": ...})。

只有 OpenAI 兼容的上游会收到历史消息；其余上游只收到当前这一句。
"""

import json
from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import quote, urlencode

import httpx

from gateway_core.backends.base import HttpBackend, Outcome
from gateway_core.domain.exceptions import ApiError, BackendError, NetworkError, RateLimitError
from gateway_core.domain.models import OperationRequest


SYSTEM_PROMPT = (
    "You are Ladybug AI, a helpful and friendly AI assistant created by Ntando Mods. "
    "You are knowledgeable, creative, and always ready to help users with their questions."
)


class OpenAICompatibleChat(HttpBackend):
    """OpenAI chat/completions 兼容上游（airforce、deepinfra）。"""

    model = "gpt-4"
    send_history = True

    def _build_messages(self, request: OperationRequest) -> List[Dict[str, str]]:
        msgs = [{"role": "system", "content": SYSTEM_PROMPT}]
        if self.send_history:
            msgs.extend(turn.to_message() for turn in request.history)
        msgs.append({"role": "user", "content": request.get("text", "")})
        return msgs

    def _build_payload(self, request: OperationRequest, stream: bool = False) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": self._build_messages(request),
            "temperature": 0.7,
            "max_tokens": 2000,
        }
        if stream:
            payload["stream"] = True
        return payload

    async def attempt(self, request: OperationRequest) -> Outcome:
        data = await self._request_json(
            "POST",
            f"{self.base_url}/chat/completions",
            json=self._build_payload(request),
        )
        return self.result(response=self._parse_response(data))

    def _parse_response(self, data: Any) -> str:
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise BackendError(code="MALFORMED_RESPONSE", message=f"{self.name}: no choices in response")
        return self._require((content or "").strip(), f"{self.name}: empty completion")

    async def stream(self, request: OperationRequest) -> AsyncIterator[str]:
        """流式调用，逐条产出增量文本。"""

        payload = self._build_payload(request, stream=True)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, trust_env=False) as client:
                async with client.stream("POST", f"{self.base_url}/chat/completions", json=payload) as resp:
                    if resp.status_code == 429:
                        raise RateLimitError(code="RATE_LIMIT", message=f"{self.name} rate limit", http_status=429)
                    if resp.status_code >= 400:
                        raise ApiError(
                            code="API_ERROR",
                            message=f"{self.name} returned HTTP {resp.status_code}",
                            http_status=resp.status_code,
                        )
                    async for line in resp.aiter_lines():
                        delta = self._parse_stream_line(line)
                        if delta:
                            yield delta
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=f"{self.name}: {e}")

    @staticmethod
    def _parse_stream_line(line: str) -> Optional[str]:
        data_str = (line or "").strip()
        if data_str.startswith("data:"):
            data_str = data_str[5:].strip()
        if not data_str or data_str == "[DONE]":
            return None
        try:
            chunk = json.loads(data_str)
        except json.JSONDecodeError:
            return None
        if not isinstance(chunk, dict):
            return None
        choices = chunk.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return None
        delta = choices[0].get("delta")
        if not isinstance(delta, dict):
            return None
        content = delta.get("content")
        return content if isinstance(content, str) and content else None


class AirforceChat(OpenAICompatibleChat):
    name = "airforce"
    model = "gpt-4"


class DeepInfraChat(OpenAICompatibleChat):
    name = "deepinfra"
    model = "meta-llama/Meta-Llama-3-70B-Instruct"
    send_history = False


class BlackboxChat(HttpBackend):
    name = "blackbox"

    async def attempt(self, request: OperationRequest) -> Outcome:
        payload = {
            "messages": [{"role": "user", "content": request.get("text", "")}],
            "previewToken": None,
            "userId": None,
            "codeModelMode": True,
            "agentMode": {},
            "trendingAgentMode": {},
            "isMicMode": False,
            "isChromeExt": False,
            "githubToken": None,
        }
        resp = await self._request("POST", f"{self.base_url}/chat", json=payload)
        # Blackbox 有时返回 JSON，有时直接返回纯文本
        try:
            body = resp.json()
            text = body.get("response") if isinstance(body, dict) else None
        except ValueError:
            text = resp.text
        return self.result(response=self._require((text or "").strip(), "blackbox: empty response"))


class HuggingFaceChat(HttpBackend):
    name = "huggingface"

    def __init__(self, timeout: float = 45.0, base_url: Optional[str] = None, token: Optional[str] = None):
        super().__init__(timeout=timeout, base_url=base_url)
        self._token = token

    async def attempt(self, request: OperationRequest) -> Outcome:
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        payload = {
            "inputs": f"You are Ladybug AI, a helpful assistant. User: {request.get('text', '')}\nAssistant:",
            "parameters": {
                "max_new_tokens": 1000,
                "temperature": 0.7,
                "top_p": 0.95,
                "return_full_text": False,
            },
        }
        data = await self._request_json("POST", self.base_url, json=payload, headers=headers)
        if isinstance(data, dict) and data.get("error"):
            return self.fail(str(data["error"]))
        try:
            text = data[0]["generated_text"]
        except (KeyError, IndexError, TypeError):
            raise BackendError(code="MALFORMED_RESPONSE", message="huggingface: no generated_text")
        return self.result(response=self._require((text or "").strip(), "huggingface: empty generation"))


class PollinationsImage(HttpBackend):
    """图片生成：只拼接 URL，不访问上游。"""

    name = "pollinations"

    async def attempt(self, request: OperationRequest) -> Outcome:
        prompt = request.get("prompt", "")
        width = request.get("width") or 1024
        height = request.get("height") or 1024
        query = urlencode({"width": width, "height": height, "nologo": "true"})
        url = f"{self.base_url}/{quote(prompt, safe='')}?{query}"
        return self.result(prompt=prompt, image_url=url, width=int(width), height=int(height))
