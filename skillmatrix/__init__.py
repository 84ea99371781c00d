"""Skill matrix assessment workflow service."""
