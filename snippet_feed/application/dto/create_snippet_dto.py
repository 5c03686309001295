from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from snippet_feed.domain.errors import Unauthenticated, ValidationFailure

DEFAULT_DESCRIPTION_MAX_LENGTH = 120
DEFAULT_TITLE_MAX_LENGTH = 200
DEFAULT_CODE_MAX_LENGTH = 100_000


@dataclass
class CreateSnippetDTO:
    user_id: Optional[str]
    title: str
    language: str
    description: str
    code: str
    description_max_length: int = DEFAULT_DESCRIPTION_MAX_LENGTH
    title_max_length: int = DEFAULT_TITLE_MAX_LENGTH
    code_max_length: int = DEFAULT_CODE_MAX_LENGTH

    def __post_init__(self) -> None:
        if not self.user_id:
            raise Unauthenticated("publish a snippet")
        self.title = (self.title or "").strip()
        self.language = (self.language or "").strip()
        self.description = (self.description or "").strip()
        if not self.title:
            raise ValidationFailure("title", "is required")
        if len(self.title) > self.title_max_length:
            raise ValidationFailure("title", f"must be at most {self.title_max_length} characters")
        if not self.language:
            raise ValidationFailure("language", "is required")
        if not self.description:
            raise ValidationFailure("description", "is required")
        if len(self.description) > self.description_max_length:
            raise ValidationFailure(
                "description", f"must be at most {self.description_max_length} characters"
            )
        if not (self.code or "").strip():
            raise ValidationFailure("code", "is required")
        if len(self.code) > self.code_max_length:
            raise ValidationFailure("code", f"must be at most {self.code_max_length} characters")
