from __future__ import annotations


class StorageKeys:
    """Top-level collections of the local store; part of its on-disk format."""

    USERS = "cybersoluceUsers"
    CURRENT_USER = "cybersoluceCurrentUser"
    ASSESSMENTS = "cybersoluceAssessments"
    USED_ASSESSMENTS = "cybersoluceUsedAssessments"
