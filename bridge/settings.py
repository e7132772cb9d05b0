from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv
import os

load_dotenv()

DEFAULT_FALLBACK_REPLY = "Sorry, I can't answer right now. Please try again in a moment."

@dataclass
class Settings:
    database_url: str
    openai_api_key: Optional[str]
    openai_model: str
    completion_provider: str
    ollama_serve_url: str
    ollama_model: str
    completion_timeout: float
    max_reply_words: int
    history_limit: int
    fallback_reply: str
    graphite_host: str
    graphite_port: int
    metrics_prefix: str
    log_level: str
    host: str
    port: int

def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///bridge.db"),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        completion_provider=os.getenv("COMPLETION_PROVIDER", "openai").lower(),
        ollama_serve_url=os.getenv("OLLAMA_SERVE_URL", "http://127.0.0.1:11434"),
        ollama_model=os.getenv("OLLAMA_MODEL", "llama2"),
        completion_timeout=float(os.getenv("COMPLETION_TIMEOUT", "30")),
        max_reply_words=int(os.getenv("MAX_REPLY_WORDS", "40")),
        history_limit=int(os.getenv("HISTORY_LIMIT", "10")),
        fallback_reply=os.getenv("FALLBACK_REPLY", DEFAULT_FALLBACK_REPLY),
        graphite_host=os.getenv("GRAPHITE_HOST", "localhost"),
        graphite_port=int(os.getenv("GRAPHITE_HOST_PORT", "8125")),
        metrics_prefix=os.getenv("METRICS_PREFIX", "production.bridge"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3001")),
    )

settings = load_settings()
