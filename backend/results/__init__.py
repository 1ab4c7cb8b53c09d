"""Exam results reporting backend."""
