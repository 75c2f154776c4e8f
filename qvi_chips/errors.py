from typing import Optional, Sequence


class SchemaError(Exception):
    """Raised when an input table is missing columns the pipeline needs."""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        missing: Sequence[str] = (),
    ):
        super().__init__(message)
        self.table = table
        self.missing = tuple(missing)

    def __str__(self) -> str:
        base = f"SchemaError: {self.args[0]}"
        if self.table:
            base += f" | Table: {self.table}"
        if self.missing:
            base += f" | Missing: {', '.join(self.missing)}"
        return base


class ParseError(ValueError):
    # Raised by the field parsers; the cleaner drops the offending row.

    def __init__(self, message: str, value: object = None):
        super().__init__(message)
        self.value = value

    def __str__(self) -> str:
        base = f"ParseError: {self.args[0]}"
        if self.value is not None:
            base += f" | Value: {self.value!r}"
        return base
