"""OpenAI provider."""
