"""Error types raised by sqlgraft."""


class SqlGraftError(Exception):
    """Base class for all sqlgraft errors."""


class ConfigurationError(SqlGraftError, ValueError):
    """A persisted field or entity is declared incorrectly.

    Raised when a field lacks its column-name annotation, when a
    relationship tag is malformed, or when schema types cannot be resolved.
    """


class MisuseError(SqlGraftError, RuntimeError):
    """An object-derived insert was requested on an insert that already has columns or rows."""


class EmptyInputError(SqlGraftError, ValueError):
    """A multi-object insert was given no objects."""


class FieldNotFoundError(SqlGraftError, KeyError):
    """No field with the requested column name exists on an entity."""

    def __str__(self) -> str:
        # KeyError repr()s its argument; keep the plain message
        return str(self.args[0]) if self.args else ""
