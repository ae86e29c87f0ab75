"""Tests for Chat Table Watch."""
