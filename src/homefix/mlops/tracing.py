"""
MLflow spans around the expensive parts of an analysis request:
the vision model call, product enrichment and the YouTube search.
Everything here is a no-op unless MLFLOW_ENABLE_TRACING is set.
"""
import asyncio
import logging
import time
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Dict, Optional

import mlflow

from ..config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


class MLflowTracer:
    def __init__(self):
        self.enabled = settings.MLFLOW_ENABLE_TRACING
        if not self.enabled:
            logger.info("MLflow tracing disabled")
            return
        try:
            mlflow.set_tracking_uri(settings.MLFLOW_TRACKING_URI)
            logger.info(f"MLflow tracing to {settings.MLFLOW_TRACKING_URI}")
        except Exception as e:
            logger.warning(f"MLflow tracing unavailable, continuing without it: {e}")
            self.enabled = False

    @contextmanager
    def span(
        self,
        name: str,
        span_type: str = "UNKNOWN",
        attributes: Optional[Dict[str, Any]] = None,
        inputs: Optional[Dict[str, Any]] = None
    ):
        """
        Open a span named e.g. "llm.analyze" of type "LLM", "RETRIEVER" or "CHAIN".
        Yields the MLflow span, or None when tracing is off. Latency is
        recorded even if the body raises.
        """
        if not self.enabled:
            yield None
            return

        with mlflow.start_span(name=name, span_type=span_type) as span:
            if attributes:
                span.set_attributes(attributes)
            if inputs:
                span.set_inputs(inputs)

            started = time.time()
            try:
                yield span
            finally:
                span.set_attribute("latency_ms", int((time.time() - started) * 1000))

    def _annotate(self, attributes: Dict[str, Any], what: str):
        # Attaches to whatever span is open; tracing failures never reach the request
        try:
            current = mlflow.get_current_active_span()
            if current:
                current.set_attributes(attributes)
        except Exception as e:
            logger.warning(f"Failed to trace {what}: {e}")

    def trace_llm_call(self, model: str, prompt: str, response: Any):
        if self.enabled:
            self._annotate({
                "model": model,
                "prompt_length": len(prompt),
                "response_length": len(response) if isinstance(response, str) else 0,
            }, "LLM call")

    def trace_enrichment(self, item_count: int, found_count: int):
        """How many materials and tools ended up with a product image."""
        if self.enabled:
            self._annotate({
                "item_count": item_count,
                "found_count": found_count,
                "hit_rate": found_count / item_count if item_count else 0.0,
            }, "enrichment")

    def trace_video_search(self, query: str, video_count: int):
        if self.enabled:
            self._annotate({"query": query, "video_count": video_count}, "video search")


def traced_operation(name: str, span_type: str = "CHAIN"):
    """
    Run the decorated function inside tracer.span(name). Coroutine functions
    are awaited inside the span so the span covers the real work:

        @traced_operation("retrieval.youtube", span_type="RETRIEVER")
        async def find_tutorial_videos(description): ...
    """
    def decorator(func: Callable):
        if asyncio.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                with tracer.span(name=name, span_type=span_type):
                    return await func(*args, **kwargs)
            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs):
            with tracer.span(name=name, span_type=span_type):
                return func(*args, **kwargs)
        return wrapper
    return decorator


tracer = MLflowTracer()
