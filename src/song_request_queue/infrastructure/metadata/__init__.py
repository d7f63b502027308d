"""Metadata lookup adapters."""

from song_request_queue.infrastructure.metadata.oembed_resolver import OEmbedMetadataResolver

__all__ = ["OEmbedMetadataResolver"]
