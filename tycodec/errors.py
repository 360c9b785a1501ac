"""Errors raised by the tycodec archives."""


class ArchiveError(Exception):
    """Error during archive decoding."""

    def __init__(self, message: str, offset: int = None, context: str = None):
        self.offset = offset
        self.context = context
        full_msg = message
        if offset is not None:
            full_msg = f"Offset {offset}: {message}"
        if context:
            full_msg += f" (in {context})"
        super().__init__(full_msg)


class TruncatedInput(ArchiveError):
    """A read needs more bytes than remain."""


class MissingAttribute(ArchiveError):
    """An XML element lacks an attribute its shape requires."""


class MissingChildElement(ArchiveError):
    """An XML element lacks a child its shape requires."""


class InvalidDocument(ArchiveError):
    """An XML document cannot be parsed, has no root, or holds unreadable text."""


class UnsupportedType(TypeError):
    """A type does not fall into any serializable shape."""
