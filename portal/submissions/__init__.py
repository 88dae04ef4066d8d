"""Submissions: reconciler, upload policy and progress projections."""
