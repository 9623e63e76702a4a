"""pilot-llm: streaming chat-completion client for OpenAI-style providers."""

__version__ = "0.1.0"
