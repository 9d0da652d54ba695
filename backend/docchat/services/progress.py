"""Step accounting for the session upload sequence."""

from typing import Optional
from pydantic import BaseModel


CREATING_INDEX_MESSAGE = "Creating document index..."
GENERATING_SUGGESTIONS_MESSAGE = "Generating suggestions..."
READY_MESSAGE = "All set!"


class UploadProgress(BaseModel):
    current: int
    total: int
    message: str
    fileName: Optional[str] = None


class UploadProgressTracker:
    """
    Progress for "create index" + one step per file + "generate suggestions".

    Every value is a pure function of the step index, so callers can
    recompute it at each step without carrying state.
    """

    def __init__(self, file_count: int):
        if file_count < 1:
            raise ValueError("file_count must be at least 1")
        self.file_count = file_count

    @property
    def total(self) -> int:
        return self.file_count + 2

    def step(self, index: int, file_name: Optional[str] = None) -> UploadProgress:
        if index < 0 or index > self.total:
            raise ValueError(f"Step {index} outside 0..{self.total}")

        if index == 0:
            message = CREATING_INDEX_MESSAGE
        elif index <= self.file_count:
            message = f"Processing file {index} of {self.file_count}..."
            file_name = file_name or "file"
        elif index == self.file_count + 1:
            message = GENERATING_SUGGESTIONS_MESSAGE
            file_name = None
        else:
            message = READY_MESSAGE
            file_name = None

        return UploadProgress(
            current=index, total=self.total, message=message, fileName=file_name
        )

    def creating_index(self) -> UploadProgress:
        return self.step(0)

    def processing_file(self, position: int, file_name: Optional[str]) -> UploadProgress:
        """Progress for the file at 1-based ``position``."""
        return self.step(position, file_name)

    def generating_suggestions(self) -> UploadProgress:
        return self.step(self.file_count + 1)

    def ready(self) -> UploadProgress:
        return self.step(self.total)
