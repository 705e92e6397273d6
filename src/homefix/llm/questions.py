"""Follow-up question generation.

Asks the model for 2-4 clarifying questions about a repair description so the
later analysis can pick precise materials.
"""

import json
from typing import Optional

from ..config import Settings
from ..log import get_logger
from ..schemas.questions import QuestionSet
from .client import LLMClient
from .prompts import load_prompt

logger = get_logger("questions")


def create_fallback_questions() -> QuestionSet:
    return QuestionSet.model_validate({
        "category": "general",
        "questions": [
            {
                "id": "location",
                "question": "Where exactly is this issue located?",
                "type": "multiple_choice",
                "options": ["Interior", "Exterior", "Basement", "Attic", "Bathroom", "Kitchen"],
                "required": True,
            },
            {
                "id": "urgency",
                "question": "How urgent is this repair?",
                "type": "multiple_choice",
                "options": ["Emergency", "High priority", "Medium priority", "Low priority"],
                "required": True,
            },
        ],
    })


def parse_question_set(content: str) -> QuestionSet:
    """Raises ValueError (json or pydantic) when the reply is not a usable question set."""
    return QuestionSet.model_validate(json.loads(content.strip()))


def generate_questions(description: str, settings: Settings, client: Optional[LLMClient] = None) -> QuestionSet:
    client = client or LLMClient(settings)
    messages = [
        {"role": "system", "content": load_prompt("questions")},
        {
            "role": "user",
            "content": (
                f'Home improvement issue: "{description}"\n\n'
                "Generate 2-4 follow-up questions to get precise recommendations."
            ),
        },
    ]
    try:
        content = client.complete(
            messages,
            model=settings.OPENAI_QUESTION_MODEL,
            max_tokens=800,
            json_mode=False,
        )
        return parse_question_set(content)
    except ValueError as e:
        logger.error(f"Invalid question set from model, using fallback: {e}")
    except Exception:
        logger.exception("Error generating questions with AI")
    return create_fallback_questions()
