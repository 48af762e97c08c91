"""Pydantic models for deployments and configuration."""
