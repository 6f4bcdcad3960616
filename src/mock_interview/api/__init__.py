"""
HTTP API module: the FastAPI application and a client-side evaluator.
"""

from mock_interview.api.client import HttpAnswerEvaluator

__all__ = ["HttpAnswerEvaluator"]
