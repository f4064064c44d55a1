from .base import (
    InferenceClient,
    InferenceConfig,
    InferenceError,
    NO_RESPONSE,
    create_inference_client,
    create_inference_client_from_loaded_config,
    extract_response_text,
    register_inference,
)

__all__ = [
    "InferenceClient",
    "InferenceConfig",
    "InferenceError",
    "NO_RESPONSE",
    "create_inference_client",
    "create_inference_client_from_loaded_config",
    "extract_response_text",
    "register_inference",
]
