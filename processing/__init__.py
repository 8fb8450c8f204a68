# Thumbnail extraction, transfer progress and meeting downloads

from .thumbnail_extractor import ThumbnailExtractor, ThumbnailExtractorConfig, ThumbnailExtractionError

__all__ = ['ThumbnailExtractor', 'ThumbnailExtractorConfig', 'ThumbnailExtractionError']
