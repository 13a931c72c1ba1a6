"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Optional

import firebase_admin
from fastapi import Depends, Header
from firebase_admin import credentials

from jobboard.applications import ApplicationService
from jobboard.config import get_settings
from jobboard.identity import (
    FirebaseIdentityProvider,
    IdentityProvider,
    InMemoryIdentityProvider,
    parse_bearer,
)
from jobboard.job_posts import JobPostService
from jobboard.profiles import ProfileService
from jobboard.storage import BlobStore, FirebaseStorageClient, InMemoryStorageClient
from jobboard.tree_store import FirebaseTreeStore, InMemoryTreeStore, TreeStore

logger = logging.getLogger(__name__)

_firebase_app: Optional[Any] = None
_tree_store: Optional[TreeStore] = None
_blob_store: Optional[BlobStore] = None
_identity_provider: Optional[IdentityProvider] = None


def _use_in_memory() -> bool:
    settings = get_settings()
    return settings.use_in_memory_backends or not settings.firebase_configured


def get_firebase_app():
    """
    Initialize the Firebase Admin app once per process.
    """
    global _firebase_app
    if _firebase_app:
        return _firebase_app

    settings = get_settings()
    _firebase_app = firebase_admin.initialize_app(
        credentials.Certificate(settings.firebase_credentials),
        {
            "databaseURL": settings.firebase_database_url,
            "storageBucket": settings.firebase_storage_bucket,
        },
    )
    logger.info("Initialized Firebase app for %s", settings.firebase_database_url)
    return _firebase_app


def get_tree_store() -> TreeStore:
    """
    Return a singleton tree store so data persists across requests.
    """
    global _tree_store
    if _tree_store:
        return _tree_store

    if _use_in_memory():
        _tree_store = InMemoryTreeStore()
    else:
        _tree_store = FirebaseTreeStore(app=get_firebase_app())
    return _tree_store


def get_blob_store() -> BlobStore:
    global _blob_store
    if _blob_store:
        return _blob_store

    if _use_in_memory():
        _blob_store = InMemoryStorageClient()
    else:
        _blob_store = FirebaseStorageClient(
            bucket_name=get_settings().firebase_storage_bucket,
            app=get_firebase_app(),
        )
    return _blob_store


def get_identity_provider() -> IdentityProvider:
    global _identity_provider
    if _identity_provider:
        return _identity_provider

    settings = get_settings()
    if _use_in_memory():
        _identity_provider = InMemoryIdentityProvider()
    else:
        _identity_provider = FirebaseIdentityProvider(
            web_api_key=settings.firebase_web_api_key,
            app=get_firebase_app(),
            timeout=settings.identity_request_timeout,
        )
    return _identity_provider


def get_current_uid(
    authorization: Optional[str] = Header(None),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> str:
    """Verify the bearer token and return the caller's uid."""
    return identity.verify_token(parse_bearer(authorization)).uid


def get_profile_service(
    tree: TreeStore = Depends(get_tree_store),
    blobs: BlobStore = Depends(get_blob_store),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> ProfileService:
    settings = get_settings()
    return ProfileService(
        tree,
        blobs,
        identity,
        asset_url_ttl=timedelta(days=settings.asset_url_ttl_days),
        download_url_ttl=timedelta(minutes=settings.download_url_ttl_minutes),
    )


def get_job_post_service(tree: TreeStore = Depends(get_tree_store)) -> JobPostService:
    return JobPostService(tree)


def get_application_service(
    tree: TreeStore = Depends(get_tree_store),
) -> ApplicationService:
    return ApplicationService(tree)
