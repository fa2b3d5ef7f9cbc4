"""Services for the VinciUI API."""

from .generation import GenerationService

__all__ = ["GenerationService"]
