from __future__ import annotations

from typing import List, Literal, Optional
from pydantic import BaseModel, Field, model_validator


class Question(BaseModel):
    id: str = Field(..., min_length=1)
    question: str = Field(..., min_length=1)
    type: Literal["multiple_choice", "yes_no", "text"]
    options: Optional[List[str]] = None
    required: bool = True

    @model_validator(mode="after")
    def validate_options(self) -> "Question":
        if self.type == "multiple_choice" and not self.options:
            raise ValueError(f"Multiple choice question missing options -> {self.id!r}")
        return self


class QuestionSet(BaseModel):
    """Follow-up questions asked before analysis to narrow down materials."""
    category: str = "general"
    questions: List[Question] = Field(..., min_length=1)
