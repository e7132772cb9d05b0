from openai import OpenAI, OpenAIError
from typing import Any, List, Optional
from bridge.models import ChatTurn
from bridge.logging_config import get_logger
from bridge.settings import Settings, DEFAULT_FALLBACK_REPLY
import requests
import statsd
import json

logger = get_logger(__name__)

class CompletionError(Exception):
    pass

class UnknownCompletionProvider(Exception):
    def __init__(self, provider: str):
        super().__init__(f"unknown completion provider: {provider}")

class LLMAssistant:
    def __init__(self, metrics: statsd.StatsClient, max_reply_words: int = 40, fallback_reply: str = DEFAULT_FALLBACK_REPLY):
        self.metrics = metrics
        self.max_reply_words = max_reply_words
        self.fallback_reply = fallback_reply
        self.model_version = ""

    def build_system_prompt(self, context: Optional[str], faqs: Optional[List[Any]] = None) -> str:
        prompt = f"Limit your reply to {self.max_reply_words} words. Context: {context or ''}."
        if isinstance(faqs, list) and len(faqs) > 0:
            prompt += " Knowledge base (FAQ): " + json.dumps(faqs, ensure_ascii=False, default=str)
        return prompt

    def build_messages(self, history: List[ChatTurn], new_message: str, context: Optional[str], faqs: Optional[List[Any]] = None):
        messages = [{
            "role": "system",
            "content": self.build_system_prompt(context, faqs)
        }]
        for turn in history:
            messages.append({
                "role": "user" if turn.role == "user" else "assistant",
                "content": turn.content
            })
        messages.append({
            "role": "user",
            "content": new_message
        })
        return messages

    # this method should be overriden in the implementation
    def get_completion(self, messages) -> str:
        return ""

    def get_response(self, history: List[ChatTurn], new_message: str, context: Optional[str], faqs: Optional[List[Any]] = None) -> str:
        messages = self.build_messages(history, new_message, context, faqs)
        try:
            reply = self.get_completion(messages)
        except CompletionError as e:
            logger.warning("completion with %s failed: %s", self.model_version, e)
            self.metrics.incr("errors.generate_response")
            return self.fallback_reply

        if not isinstance(reply, str):
            logger.warning("completion with %s returned a %s instead of text", self.model_version, type(reply).__name__)
            self.metrics.incr("errors.generate_response")
            return self.fallback_reply

        if not reply or not reply.strip():
            logger.warning("completion with %s returned an empty reply", self.model_version)
            self.metrics.incr("errors.generate_response")
            return self.fallback_reply

        self.metrics.incr("success.generate_response")
        return reply.strip()

class ChatGPTAssistant(LLMAssistant):
    def __init__(self, metrics: statsd.StatsClient, openai_api_key: str, model: str = "gpt-4o-mini", timeout: float = 30, **kwargs):
        super().__init__(metrics=metrics, **kwargs)
        self.openai_client = OpenAI(api_key=openai_api_key, timeout=timeout)
        self.model_version = model

    def get_completion(self, messages) -> str:
        try:
            response = self.openai_client.chat.completions.create(
                model=self.model_version, messages=messages
            )
        except OpenAIError as e:
            raise CompletionError(str(e)) from e

        if not response.choices:
            raise CompletionError("no completion choices returned")
        return response.choices[0].message.content or ""

class OllamaAssistant(LLMAssistant):
    def __init__(
        self,
        metrics: statsd.StatsClient,
        model: str = "llama2",
        ctx_window: int = 4096,
        OLLAMA_SERVE_URL: str = "http://127.0.0.1:11434",
        timeout: float = 30,
        **kwargs,
    ):
        super().__init__(metrics=metrics, **kwargs)
        self.chat_endpoint = f"{OLLAMA_SERVE_URL.rstrip('/')}/api/chat"
        self.model_version = model
        self.ctx_window = ctx_window
        self.timeout = timeout

    def get_completion(self, messages) -> str:
        body = {
            "model": self.model_version,
            "messages": messages,
            "options": {
                "num_ctx": self.ctx_window,
            },
        }
        try:
            response = requests.post(self.chat_endpoint, data=json.dumps(body), timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise CompletionError(str(e)) from e

        # ollama streams one json object per line, each holding a piece of the reply
        response_bulk = []
        try:
            for response_str in response.content.decode("utf-8").splitlines():
                if not response_str.strip():
                    continue
                content = (json.loads(response_str).get("message") or {}).get("content") or ""
                if not isinstance(content, str):
                    raise CompletionError(f"unexpected ollama content: {content!r}")
                response_bulk.append(content)
        except (ValueError, AttributeError) as e:
            raise CompletionError(f"malformed ollama response: {e}") from e
        return "".join(response_bulk)

def build_assistant(settings: Settings, metrics: statsd.StatsClient) -> LLMAssistant:
    common = {
        "max_reply_words": settings.max_reply_words,
        "fallback_reply": settings.fallback_reply,
        "timeout": settings.completion_timeout,
    }
    if settings.completion_provider == "openai":
        return ChatGPTAssistant(metrics=metrics, openai_api_key=settings.openai_api_key, model=settings.openai_model, **common)
    if settings.completion_provider == "ollama":
        return OllamaAssistant(metrics=metrics, model=settings.ollama_model, OLLAMA_SERVE_URL=settings.ollama_serve_url, **common)
    raise UnknownCompletionProvider(settings.completion_provider)
