"""Shared test fixtures: GitHub payload builders and mirror helpers."""
