"""Orchestration core for sequential and parallel agent runs."""
