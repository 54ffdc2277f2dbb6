"""Tests for firecontrol."""
