"""Backend for turning RSS feeds into AI-curated newspapers."""

__all__ = ["config", "models", "server"]
