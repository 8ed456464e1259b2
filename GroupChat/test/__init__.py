"""
Tests for GroupChat.

Run with: python -m pytest GroupChat/test -v
"""
