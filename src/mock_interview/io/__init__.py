"""
IO module for interview interfaces.

Provides text and voice interfaces for conducting interviews, and the
results view.
"""

from mock_interview.io.feedback_view import render_feedback, show_feedback
from mock_interview.io.text_interface import InterviewInterface, TextInterface
from mock_interview.io.voice_interface import VoiceInterface

__all__ = ["InterviewInterface", "TextInterface", "VoiceInterface", "render_feedback", "show_feedback"]
