"""Assignments: admin authoring and shared reads."""
