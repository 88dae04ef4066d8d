"""Routers for auth, student and admin APIs."""
