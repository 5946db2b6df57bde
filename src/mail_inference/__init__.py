"""
On-device AI inference orchestration for the mail client.

Decides which inference engine handles a request and turns mail items into:
- Categories (classification with generative fallback)
- Thread summaries (cached on the thread)
- Smart reply suggestions (raced against a hard deadline)
- Embeddings (native or deterministic hash fallback)
- Spam flags (ensemble of model and rule signals)

Architecture: engine resolver + inference repository + batch scheduler
"""

__version__ = "0.1.0"
