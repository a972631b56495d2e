"""Core domain package for maintainer.

Core contains fetching, normalization, rule evaluation, and scheduling logic
without any GitHub HTTP or storage-specific code, keeping the business logic
portable.
"""
