"""Homefix - an API that turns a home-repair problem into a structured repair plan.

A description and/or photo is sent to an OpenAI vision model, the JSON reply is
recovered and validated against a closed schema, and the plan is enriched with
retail product images and YouTube tutorials before being stored.

Components:
- main_api: FastAPI app and routes
- llm: prompts, OpenAI client, model-output parsing/validation
- retrieval: retail product and YouTube scrapers
- pipeline: per-request orchestration
- store: SQLite persistence
- mlops: MLflow tracing
"""

__version__ = "1.0.0"
