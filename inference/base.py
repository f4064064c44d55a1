import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, Sequence

from core.registry import register_named, resolve_registered

L = logging.getLogger("camera_ai_bridge.inference")

NO_RESPONSE = "No response generated"


class InferenceError(RuntimeError):
    """Transport failure, non-2xx status, bad payload or timeout."""

    def __init__(self, message: str, *, status: int | None = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


@dataclass
class InferenceConfig:
    endpoint: str
    api_token: str
    model: str
    timeout_s: float = 60.0
    max_tokens: int = 300


class InferenceClient(Protocol):
    async def infer(
        self,
        images: Sequence[bytes],
        prompt: str,
        response_format: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Return the chat-completion response body."""
        ...

    async def close(self) -> None: ...


_registry: Dict[str, Callable[..., InferenceClient]] = {}


def register_inference(name: str):
    return register_named(_registry, name)


def create_inference_client(name: str, cfg: InferenceConfig) -> InferenceClient:
    factory = resolve_registered(
        _registry,
        name,
        package=__package__ or "inference",
        unknown_label="inference backend",
    )
    return factory(cfg)


def create_inference_client_from_loaded_config(cfg) -> InferenceClient:
    return create_inference_client(
        cfg.openai.backend,
        InferenceConfig(
            endpoint=str(cfg.openai.endpoint),
            api_token=str(cfg.openai.api_token),
            model=str(cfg.openai.model),
            timeout_s=float(cfg.openai.timeout_s),
            max_tokens=int(cfg.openai.max_tokens),
        ),
    )


def extract_response_text(response: Any) -> str:
    """Pull `choices[0].message.content`; sentinel text when there is none."""
    if not isinstance(response, dict):
        return NO_RESPONSE
    choices = response.get("choices") or []
    if not choices:
        return NO_RESPONSE
    first = choices[0] if isinstance(choices, list) else None
    if not isinstance(first, dict):
        return NO_RESPONSE
    message = first.get("message")
    if not isinstance(message, dict):
        return NO_RESPONSE
    content = message.get("content")
    if content is None:
        return NO_RESPONSE
    if isinstance(content, list):
        # Some servers return content parts even for text answers.
        return "".join(
            str(part.get("text", "")) for part in content if isinstance(part, dict)
        )
    return str(content)


__all__ = [
    "InferenceClient",
    "InferenceConfig",
    "InferenceError",
    "NO_RESPONSE",
    "register_inference",
    "create_inference_client",
    "create_inference_client_from_loaded_config",
    "extract_response_text",
]
