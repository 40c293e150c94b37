"""
Appwrite-backed content store.

Two clients are used: one carrying the API key for databases and storage,
and a key-less one per login so e-mail/password sessions never run with
server privileges.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from appwrite.client import Client
from appwrite.exception import AppwriteException
from appwrite.id import ID
from appwrite.query import Query
from appwrite.services.account import Account
from appwrite.services.databases import Databases

from portfolio.config import Settings
from portfolio.db import (
    CERTIFICATE_FIELDS,
    AdminRecord,
    CertificateRecord,
    ProjectRecord,
    dump_tech_stack,
    load_tech_stack,
    require_title,
    validate_certificate,
)
from portfolio.errors import NotFoundError, UpstreamError

logger = logging.getLogger(__name__)

LIST_LIMIT = 100


def make_admin_client(settings: Settings) -> Client:
    if not settings.appwrite_project_id:
        raise ValueError("APPWRITE_PROJECT_ID is required for the Appwrite backend")
    client = Client()
    client.set_endpoint(settings.appwrite_endpoint)
    client.set_project(settings.appwrite_project_id)
    client.set_key(settings.appwrite_api_key or "")
    return client


def make_account_factory(settings: Settings) -> Callable[[], Account]:
    def factory() -> Account:
        client = Client()
        client.set_endpoint(settings.appwrite_endpoint)
        client.set_project(settings.appwrite_project_id or "")
        return Account(client)

    return factory


class AppwriteContentStore:
    """Projects, certificates and the admin allow-list as Appwrite documents."""

    def __init__(
        self,
        databases: Databases,
        *,
        database_id: str,
        projects_collection_id: str,
        certificates_collection_id: str,
        admins_collection_id: str,
        tech_stack_format: str = "json",
    ):
        self.databases = databases
        self.database_id = database_id
        self.projects_collection_id = projects_collection_id
        self.certificates_collection_id = certificates_collection_id
        self.admins_collection_id = admins_collection_id
        self.tech_stack_format = tech_stack_format

    def open(self) -> None:
        # Collections are provisioned in the Appwrite console.
        logger.info("Using Appwrite database %s", self.database_id)

    def close(self) -> None:
        pass

    def _list(self, collection_id: str, queries: list) -> dict:
        try:
            return self.databases.list_documents(
                database_id=self.database_id,
                collection_id=collection_id,
                queries=queries,
            )
        except AppwriteException as exc:
            raise UpstreamError(exc.message or str(exc)) from exc

    def _list_all(self, collection_id: str, order: str) -> list[dict]:
        """Follow cursor pages until the collection is exhausted."""
        documents: list[dict] = []
        queries = [order, Query.limit(LIST_LIMIT)]
        while True:
            result = self._list(collection_id, queries)
            page = result.get("documents", [])
            documents.extend(page)
            total = result.get("total")
            if len(page) < LIST_LIMIT or (total is not None and len(documents) >= total):
                return documents
            queries = [
                order,
                Query.limit(LIST_LIMIT),
                Query.cursor_after(page[-1]["$id"]),
            ]

    def _create(self, collection_id: str, data: dict) -> dict:
        try:
            return self.databases.create_document(
                database_id=self.database_id,
                collection_id=collection_id,
                document_id=ID.unique(),
                data=data,
            )
        except AppwriteException as exc:
            raise UpstreamError(exc.message or str(exc)) from exc

    def _delete(self, collection_id: str, document_id: str) -> bool:
        try:
            self.databases.delete_document(
                database_id=self.database_id,
                collection_id=collection_id,
                document_id=document_id,
            )
        except AppwriteException as exc:
            if exc.code == 404:
                return False
            raise UpstreamError(exc.message or str(exc)) from exc
        return True

    def _project_data(self, fields: dict) -> dict:
        return {
            "title": fields["title"],
            "short_description": fields.get("short_description"),
            "full_description": fields.get("full_description"),
            "tech_stack": dump_tech_stack(
                fields.get("tech_stack") or [], self.tech_stack_format
            ),
            "demo_url": fields.get("demo_url"),
            "repo_url": fields.get("repo_url"),
        }

    def _to_project(self, doc: dict) -> ProjectRecord:
        return ProjectRecord(
            id=doc["$id"],
            title=doc.get("title") or "",
            short_description=doc.get("short_description"),
            full_description=doc.get("full_description"),
            tech_stack=load_tech_stack(doc.get("tech_stack"), self.tech_stack_format),
            image_url=doc.get("image_url"),
            demo_url=doc.get("demo_url"),
            repo_url=doc.get("repo_url"),
            created_at=doc.get("$createdAt"),
        )

    @staticmethod
    def _to_certificate(doc: dict) -> CertificateRecord:
        progress = doc.get("progress_percent")
        return CertificateRecord(
            id=doc["$id"],
            title=doc.get("title") or "",
            issuer=doc.get("issuer"),
            issue_date=doc.get("issue_date"),
            credential_url=doc.get("credential_url"),
            image_url=doc.get("image_url"),
            status=doc.get("status") or "Completed",
            progress_percent=100 if progress is None else int(progress),
            created_at=doc.get("$createdAt"),
        )

    @staticmethod
    def _to_admin(doc: dict) -> AdminRecord:
        return AdminRecord(
            id=doc["$id"],
            username=doc["username"],
            password_hash=doc.get("password_hash") or "",
        )

    def list_projects(self) -> list[ProjectRecord]:
        documents = self._list_all(
            self.projects_collection_id, Query.order_desc("$createdAt")
        )
        return [self._to_project(doc) for doc in documents]

    def create_project(
        self, fields: dict, image_url: Optional[str] = None
    ) -> ProjectRecord:
        require_title(fields)
        data = {**self._project_data(fields), "image_url": image_url}
        return self._to_project(self._create(self.projects_collection_id, data))

    def update_project(
        self, project_id: str, fields: dict, image_url: Optional[str] = None
    ) -> ProjectRecord:
        require_title(fields)
        data = self._project_data(fields)
        if image_url:
            data["image_url"] = image_url
        try:
            doc = self.databases.update_document(
                database_id=self.database_id,
                collection_id=self.projects_collection_id,
                document_id=project_id,
                data=data,
            )
        except AppwriteException as exc:
            if exc.code == 404:
                raise NotFoundError(f"Project {project_id} not found") from exc
            raise UpstreamError(exc.message or str(exc)) from exc
        return self._to_project(doc)

    def delete_project(self, project_id: str) -> bool:
        return self._delete(self.projects_collection_id, project_id)

    def list_certificates(self) -> list[CertificateRecord]:
        documents = self._list_all(
            self.certificates_collection_id, Query.order_asc("$createdAt")
        )
        return [self._to_certificate(doc) for doc in documents]

    def create_certificate(
        self, fields: dict, image_url: Optional[str] = None
    ) -> CertificateRecord:
        fields = validate_certificate(fields)
        data = {name: fields.get(name) for name in CERTIFICATE_FIELDS}
        data["image_url"] = image_url
        return self._to_certificate(
            self._create(self.certificates_collection_id, data)
        )

    def delete_certificate(self, certificate_id: str) -> bool:
        return self._delete(self.certificates_collection_id, certificate_id)

    def get_admin(self, username: str) -> Optional[AdminRecord]:
        result = self._list(
            self.admins_collection_id,
            [Query.equal("username", username), Query.limit(1)],
        )
        documents = result.get("documents", [])
        return self._to_admin(documents[0]) if documents else None

    def create_admin(self, username: str, password_hash: str) -> AdminRecord:
        doc = self._create(
            self.admins_collection_id,
            {"username": username, "password_hash": password_hash},
        )
        return self._to_admin(doc)

    def count_admins(self) -> int:
        result = self._list(self.admins_collection_id, [Query.limit(1)])
        return int(result.get("total", 0))
