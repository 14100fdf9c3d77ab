"""Procurement portal authorization service."""
