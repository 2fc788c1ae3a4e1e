"""Adapters — SQLAlchemy repositories backing the core interfaces."""

__all__: list[str] = []
