"""Single-call repair analysis.

Sends the description (and optional photo) to the vision model and turns the
reply into a RepairAnalysis. Every failure degrades to the fallback plan.
"""

from typing import Any, Dict, List, Optional

from ..config import Settings
from ..log import get_logger
from ..mlops.tracing import tracer
from ..schemas.analysis import RepairAnalysis
from .client import LLMClient, build_user_content
from .context import extract_repair_context, get_domain_guidance
from .model_output import create_fallback_response, parse_model_response
from .prompts import load_prompt

logger = get_logger("analyze")


def create_user_prompt(description: str) -> str:
    context = extract_repair_context(description)
    requirements = load_prompt("analyze_requirements")

    return (
        "REPAIR ISSUE ANALYSIS:\n\n"
        f"Repair Type: {context.repair_type}\n"
        f"Location: {context.location}\n"
        f"Problem Description: {description}\n"
        f"Materials/Surface: {context.materials}\n"
        f"Environment: {context.environment}\n"
        f"System Type: {context.system_type}\n\n"
        "DOMAIN-SPECIFIC ANALYSIS REQUIRED:\n"
        f"{get_domain_guidance(context.repair_type)}\n\n"
        f"{requirements}"
    )


def build_messages(description: str, image_path: Optional[str] = None) -> List[Dict[str, Any]]:
    return [
        {"role": "system", "content": load_prompt("analyze_system")},
        {"role": "user", "content": build_user_content(create_user_prompt(description), image_path)},
    ]


class RepairAnalyzer:
    def __init__(self, settings: Settings, client: Optional[LLMClient] = None):
        self.settings = settings
        self.client = client or LLMClient(settings)

    def analyze(self, description: str, image_path: Optional[str] = None) -> RepairAnalysis:
        """
        Ask the vision model for a repair plan.

        Args:
            description: What the user says is wrong
            image_path: Optional (already normalized) photo of the problem

        Returns:
            A schema-valid RepairAnalysis; the fallback plan when the call or the parse fails.
        """
        model = self.settings.OPENAI_VISION_MODEL
        try:
            with tracer.span("llm.analyze", span_type="LLM", inputs={"description": description}):
                content = self.client.complete(build_messages(description, image_path), model=model)
                tracer.trace_llm_call(model=model, prompt=description, response=content)
                return parse_model_response(content)
        except Exception as e:
            logger.error(f"OpenAI analysis failed, using fallback: {e}")
            return create_fallback_response()
