"""Terminal chat agent for Ollama models with tool calling, and an async Ollama chat client."""

__version__ = "0.1.0"