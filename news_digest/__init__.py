"""Collects RSS news, summarizes new articles with Gemini, and stores them."""

__version__ = "0.1.0"
