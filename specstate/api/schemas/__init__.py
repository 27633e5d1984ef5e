"""Pydantic schemas for the specstate API."""
