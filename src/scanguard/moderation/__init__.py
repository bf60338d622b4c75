"""Offense escalation, enforcement and moderator notifications."""
