"""
Schemas Module
==============

Pydantic models for request validation.
"""

from cubems.schemas.patterns import AcknowledgmentRequest, AlgorithmConfigRequest, PatternDetectionRequest

__all__ = ["AcknowledgmentRequest", "AlgorithmConfigRequest", "PatternDetectionRequest"]
