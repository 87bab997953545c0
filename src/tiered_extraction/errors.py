"""Errors raised by the extraction pipeline."""


class ExtractionError(RuntimeError):
    """The source document could not be opened or has no resolvable pages."""

    def __init__(
        self,
        message: str,
        file_name: str | None = None,
        file_size: int | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.file_name = file_name
        self.file_size = file_size
        self.cause = cause

    def __str__(self) -> str:
        base = super().__str__()
        context = []
        if self.file_name:
            context.append(f"file={self.file_name}")
        if self.file_size is not None:
            context.append(f"bytes={self.file_size}")
        if self.cause is not None:
            context.append(f"cause={type(self.cause).__name__}: {self.cause}")
        if not context:
            return base
        return f"{base} ({', '.join(context)})"
