from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from .fetch import BlobFetcher
from .frames import FrameExtractor
from .identity import IdentityVerifier
from .records import RecordStore
from .storage import BlobStore
from .thumbnails import ThumbnailService


@dataclass
class ServiceContainer:
    records: RecordStore
    fetcher: BlobFetcher
    extractor: FrameExtractor
    storage: BlobStore
    identity: IdentityVerifier

    @property
    def thumbnails(self) -> ThumbnailService:
        return ThumbnailService(records=self.records, extractor=self.extractor, storage=self.storage)


def build_services() -> ServiceContainer:
    fetcher = BlobFetcher()
    return ServiceContainer(
        records=RecordStore(),
        fetcher=fetcher,
        extractor=FrameExtractor(fetcher=fetcher),
        storage=BlobStore(),
        identity=IdentityVerifier(),
    )


def init_services(app, services: ServiceContainer | None = None) -> ServiceContainer:
    container = services or build_services()
    app.extensions["services"] = container
    return container


def get_services() -> ServiceContainer:
    container = current_app.extensions.get("services")
    if container is None:
        container = build_services()
        current_app.extensions["services"] = container
    return container
