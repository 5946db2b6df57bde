"""
Unit tests for the mail inference layer.

Components are tested in isolation:
- Engines (capabilities, serialization, Ollama wire format via MockTransport)
- Prompts (sanitization, templates, parsers)
- Inference repository and services (fallback chains, deadline race)
- Spam rules and ensemble scoring
- Batch scheduler (batching, yields, cancellation)

No Ollama daemon is needed.
"""
