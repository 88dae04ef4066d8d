"""Operator tooling (schema provisioning)."""
