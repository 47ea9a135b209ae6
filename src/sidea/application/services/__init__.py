"""Application services."""

from sidea.application.services.catalogue_search_service import CatalogueSearchService
from sidea.application.services.collection_service import CollectionService
from sidea.application.services.cover_art_service import CoverArtService
from sidea.application.services.vision_service import VisionService, build_vision_providers

__all__ = [
    "CatalogueSearchService",
    "CollectionService",
    "CoverArtService",
    "VisionService",
    "build_vision_providers",
]
