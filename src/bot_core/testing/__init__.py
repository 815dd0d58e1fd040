# src/bot_core/testing/__init__.py
"""Deterministic fakes for the capabilities, plus a fully wired test harness."""
