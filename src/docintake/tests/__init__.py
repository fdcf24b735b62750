"""Tests for the document intake layer."""
