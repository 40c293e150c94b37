"""
HTTP routes for the portfolio API.
"""

from __future__ import annotations

import logging
from typing import Optional, Type, TypeVar

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from starlette.datastructures import UploadFile

from portfolio.auth import Authenticator, create_access_token, require_admin
from portfolio.config import Settings
from portfolio.db import ContentStore
from portfolio.dependencies import (
    Services,
    get_app_settings,
    get_authenticator,
    get_services,
    get_store,
)
from portfolio.errors import UploadTooLarge, ValidationError
from portfolio.schemas import (
    AdminIdentity,
    Certificate,
    CertificateFields,
    CheckAuthResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    Project,
    ProjectFields,
    describe_validation_errors,
)
from portfolio.storage import ingest

logger = logging.getLogger(__name__)

router = APIRouter()

FieldsT = TypeVar("FieldsT", bound=BaseModel)

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


async def _read_payload(request: Request) -> tuple[dict, Optional[UploadFile]]:
    """Return the submitted fields and the ``image`` upload, if any."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        image = form.get("image")
        fields = {key: value for key, value in form.items() if key != "image"}
        if not isinstance(image, UploadFile) or not image.filename:
            image = None
        return fields, image
    try:
        body = await request.json()
    except ValueError as exc:
        raise ValidationError("Request body must be JSON or form data") from exc
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body, None


def _validate(model: Type[FieldsT], fields: dict) -> dict:
    try:
        return model.model_validate(fields).model_dump(mode="json")
    except PydanticValidationError as exc:
        raise ValidationError(describe_validation_errors(exc.errors())) from exc


async def _store_image(image: Optional[UploadFile], services: Services) -> Optional[str]:
    if image is None:
        return None
    max_bytes = services.settings.max_upload_bytes
    if image.size is not None and image.size > max_bytes:
        raise UploadTooLarge(f"Upload exceeds the {max_bytes} byte limit")
    # One byte past the cap is enough for ingest to reject it.
    data = await image.read(max_bytes + 1)
    return ingest(
        services.files,
        data,
        image.filename,
        image.content_type,
        max_bytes=max_bytes,
    )


@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    response: Response,
    settings: Settings = Depends(get_app_settings),
    authenticator: Authenticator = Depends(get_authenticator),
):
    admin = authenticator.authenticate(payload.username, payload.password)
    token = create_access_token(admin, settings)
    response.set_cookie(
        key=settings.cookie_name,
        value=token,
        max_age=settings.token_ttl_seconds,
        httponly=True,
        samesite="strict",
        secure=settings.cookie_secure,
    )
    logger.info("Admin %s logged in", admin.username)
    return LoginResponse(success=True, message="Login successful")


@router.post("/logout", response_model=MessageResponse)
def logout(response: Response, settings: Settings = Depends(get_app_settings)):
    response.delete_cookie(
        key=settings.cookie_name,
        httponly=True,
        samesite="strict",
        secure=settings.cookie_secure,
    )
    return MessageResponse(message="Logged out")


@router.get("/check-auth", response_model=CheckAuthResponse)
def check_auth(identity: AdminIdentity = Depends(require_admin)):
    return CheckAuthResponse(authenticated=True, user=identity)


@router.get("/projects", response_model=list[Project])
def list_projects(store: ContentStore = Depends(get_store)):
    return [Project(**record.as_dict()) for record in store.list_projects()]


@router.post("/projects", response_model=Project)
async def create_project(
    request: Request,
    identity: AdminIdentity = Depends(require_admin),
    services: Services = Depends(get_services),
):
    fields, image = await _read_payload(request)
    fields = _validate(ProjectFields, fields)
    # Upload first so the record is created with its final image URL.
    image_url = await _store_image(image, services)
    record = services.store.create_project(fields, image_url=image_url)
    logger.info("Project %s created by %s", record.id, identity.username)
    return Project(**record.as_dict())


@router.put("/projects/{project_id}", response_model=Project)
async def update_project(
    project_id: str,
    request: Request,
    identity: AdminIdentity = Depends(require_admin),
    services: Services = Depends(get_services),
):
    fields, image = await _read_payload(request)
    existing_image = fields.pop("existing_image", None) or None
    fields = _validate(ProjectFields, fields)
    image_url = await _store_image(image, services) or existing_image
    record = services.store.update_project(project_id, fields, image_url=image_url)
    logger.info("Project %s updated by %s", record.id, identity.username)
    return Project(**record.as_dict())


@router.delete("/projects/{project_id}", response_model=MessageResponse)
def delete_project(
    project_id: str,
    identity: AdminIdentity = Depends(require_admin),
    store: ContentStore = Depends(get_store),
):
    if store.delete_project(project_id):
        logger.info("Project %s deleted by %s", project_id, identity.username)
    else:
        logger.info("Project %s was already absent", project_id)
    return MessageResponse(message="Project deleted")


@router.get("/certificates", response_model=list[Certificate])
def list_certificates(store: ContentStore = Depends(get_store)):
    return [Certificate(**record.as_dict()) for record in store.list_certificates()]


@router.post("/certificates", response_model=Certificate)
async def create_certificate(
    request: Request,
    identity: AdminIdentity = Depends(require_admin),
    services: Services = Depends(get_services),
):
    fields, image = await _read_payload(request)
    fields = _validate(CertificateFields, fields)
    image_url = await _store_image(image, services)
    record = services.store.create_certificate(fields, image_url=image_url)
    logger.info("Certificate %s created by %s", record.id, identity.username)
    return Certificate(**record.as_dict())


@router.delete("/certificates/{certificate_id}", response_model=MessageResponse)
def delete_certificate(
    certificate_id: str,
    identity: AdminIdentity = Depends(require_admin),
    store: ContentStore = Depends(get_store),
):
    if store.delete_certificate(certificate_id):
        logger.info("Certificate %s deleted by %s", certificate_id, identity.username)
    else:
        logger.info("Certificate %s was already absent", certificate_id)
    return MessageResponse(message="Certificate deleted")
