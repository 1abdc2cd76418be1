"""Tag registry."""

from gateway.managers.tag.tag import TagManager

__all__ = ["TagManager"]
