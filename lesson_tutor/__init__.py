"""Lesson Tutor: a conversational tutor that plans lessons step by step."""
