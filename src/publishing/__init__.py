"""
Publishing Module

Publisher capability interface and the per-platform registry.
"""

from src.publishing.publisher import Publisher, PublisherRegistry, PublishResult

__all__ = ["Publisher", "PublisherRegistry", "PublishResult"]
