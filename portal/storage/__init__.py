"""Storage package

Bucket configuration, deterministic artifact paths and the Supabase Storage
adapter used by the submission reconciler.
"""
