"""
Dependency wiring for the FastAPI app.

Service handles are built once from settings, carried on ``app.state`` and
opened/closed by the application lifespan.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from appwrite.services.databases import Databases
from appwrite.services.storage import Storage
from fastapi import Depends, Request

from portfolio.appwrite_backend import (
    AppwriteContentStore,
    make_account_factory,
    make_admin_client,
)
from portfolio.auth import (
    AppwriteAuthenticator,
    Authenticator,
    LocalAuthenticator,
    ensure_bootstrap_admin,
)
from portfolio.config import Settings
from portfolio.db import ContentStore, InMemoryContentStore, SqlContentStore
from portfolio.storage import (
    AppwriteFileStorage,
    FileStorage,
    InMemoryFileStorage,
    LocalFileStorage,
    S3FileStorage,
)

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    store: ContentStore
    files: FileStorage
    authenticator: Authenticator

    def open(self) -> None:
        self.store.open()
        self.files.open()
        if self.settings.auth_provider == "local":
            ensure_bootstrap_admin(self.store, self.settings)

    def close(self) -> None:
        self.store.close()


def build_store(settings: Settings) -> ContentStore:
    if settings.store_backend == "memory":
        return InMemoryContentStore()
    if settings.store_backend == "appwrite":
        return AppwriteContentStore(
            Databases(make_admin_client(settings)),
            database_id=settings.appwrite_db_id,
            projects_collection_id=settings.appwrite_projects_collection_id,
            certificates_collection_id=settings.appwrite_certificates_collection_id,
            admins_collection_id=settings.appwrite_admins_collection_id,
            tech_stack_format=settings.tech_stack_format,
        )
    return SqlContentStore(
        settings.database_url, tech_stack_format=settings.tech_stack_format
    )


def build_file_storage(settings: Settings) -> FileStorage:
    if settings.file_storage == "memory":
        return InMemoryFileStorage()
    if settings.file_storage == "s3":
        if not settings.s3_bucket:
            raise ValueError("S3_BUCKET is required for FILE_STORAGE=s3")
        return S3FileStorage(
            bucket=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.s3_public_base_url,
        )
    if settings.file_storage == "appwrite":
        return AppwriteFileStorage(
            storage=Storage(make_admin_client(settings)),
            bucket_id=settings.appwrite_bucket_id,
            endpoint=settings.appwrite_endpoint,
            project_id=settings.appwrite_project_id or "",
        )
    return LocalFileStorage(
        directory=settings.upload_dir, url_prefix=settings.upload_url_prefix
    )


def build_authenticator(settings: Settings, store: ContentStore) -> Authenticator:
    if settings.auth_provider == "appwrite":
        return AppwriteAuthenticator(
            make_account_factory(settings),
            store,
            auto_enroll=settings.auto_enroll_admins,
        )
    return LocalAuthenticator(store)


def build_services(settings: Settings) -> Services:
    store = build_store(settings)
    services = Services(
        settings=settings,
        store=store,
        files=build_file_storage(settings),
        authenticator=build_authenticator(settings, store),
    )
    logger.info(
        "Configured store=%s files=%s auth=%s",
        settings.store_backend,
        settings.file_storage,
        settings.auth_provider,
    )
    return services


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_app_settings(services: Services = Depends(get_services)) -> Settings:
    return services.settings


def get_store(services: Services = Depends(get_services)) -> ContentStore:
    return services.store


def get_authenticator(services: Services = Depends(get_services)) -> Authenticator:
    return services.authenticator
