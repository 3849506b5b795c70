"""
Back-office application object.

Constructs the storage backends once and wires every service on top of
them.
"""

import logging
from datetime import timedelta
from typing import Optional

import config.settings as settings
from herbful.models.account import Credentials
from herbful.registry.symptom_index import SymptomIndex
from herbful.services.aggregation import RatingAggregator
from herbful.services.auth import AdminAuth
from herbful.services.catalog import TreatmentCatalog
from herbful.services.reviews import ReviewService
from herbful.services.transfer import TreatmentTransfer
from herbful.utils.locks import KeyedLock
from herbful.utils.storage import (
    BlobStore,
    CollectionStore,
    JsonFileStore,
    LocalBlobStore,
    LocalStateStore,
)

logger = logging.getLogger(__name__)


class BackOffice:
    """
    Owns the store handles and the services built on them.

    Components:
    Symptom Index ← Treatment Catalog, Review Service
    → Rating Aggregator, Treatment Transfer, Admin Auth
    """

    def __init__(
        self,
        store: CollectionStore,
        blob_store: Optional[BlobStore] = None,
        state: Optional[LocalStateStore] = None,
        firebase_app=None
    ):
        """
        Args:
            store: Collection store for treatments, reviews and the index
            blob_store: Image storage (optional)
            state: Local state for admin auth (optional; no auth without it)
            firebase_app: Firebase app to release on close, if any
        """
        self.store = store
        self.blob_store = blob_store
        self.firebase_app = firebase_app

        logger.info("Initializing back-office components...")

        self.symptom_index = SymptomIndex(
            store,
            symptoms_path=settings.SYMPTOMS_PATH,
            treatments_path=settings.TREATMENTS_PATH
        )
        self.catalog = TreatmentCatalog(
            store,
            self.symptom_index,
            blob_store=blob_store,
            treatments_path=settings.TREATMENTS_PATH,
            images_path=settings.IMAGES_PATH
        )
        self.reviews = ReviewService(
            store,
            reviews_path=settings.REVIEWS_PATH,
            treatments_path=settings.TREATMENTS_PATH,
            locks=KeyedLock()
        )
        self.ratings = RatingAggregator(self.catalog, self.reviews)
        self.transfer = TreatmentTransfer(
            store,
            self.symptom_index,
            treatments_path=settings.TREATMENTS_PATH,
            reviews_path=settings.REVIEWS_PATH
        )

        self.auth: Optional[AdminAuth] = None
        if state is not None:
            self.auth = AdminAuth(
                state,
                default_credentials=Credentials(
                    username=settings.DEFAULT_ADMIN_USERNAME,
                    password=settings.DEFAULT_ADMIN_PASSWORD,
                    email=settings.DEFAULT_ADMIN_EMAIL
                ),
                session_ttl=timedelta(hours=settings.SESSION_TTL_HOURS),
                credentials_key=settings.CREDENTIALS_STORAGE_KEY,
                session_key=settings.AUTH_STORAGE_KEY
            )

        logger.info("Back-office initialized successfully")

    @classmethod
    def from_settings(cls, backend: Optional[str] = None) -> "BackOffice":
        """
        Build the back-office for the configured backend.

        Raises:
            ValueError: For an unknown backend or missing Firebase settings
        """
        backend = backend or settings.STORE_BACKEND
        state = LocalStateStore(str(settings.STATE_ROOT))

        if backend == "json":
            return cls(
                JsonFileStore(str(settings.STORE_FILE)),
                blob_store=LocalBlobStore(str(settings.BLOB_ROOT)),
                state=state
            )

        if backend == "firebase":
            if not settings.FIREBASE_CREDENTIALS or not settings.FIREBASE_DATABASE_URL:
                raise ValueError(
                    "FIREBASE_CREDENTIALS and FIREBASE_DATABASE_URL must be set for the firebase backend"
                )
            from herbful.utils import firebase

            app = firebase.init_app(
                settings.FIREBASE_CREDENTIALS,
                settings.FIREBASE_DATABASE_URL,
                storage_bucket=settings.FIREBASE_STORAGE_BUCKET or None
            )
            blob_store = firebase.FirebaseBlobStore(app) if settings.FIREBASE_STORAGE_BUCKET else None
            return cls(
                firebase.FirebaseCollectionStore(app),
                blob_store=blob_store,
                state=state,
                firebase_app=app
            )

        raise ValueError(f"Unknown store backend: {backend!r}")

    def close(self) -> None:
        """Release the Firebase app, if one was created."""
        if self.firebase_app is not None:
            import firebase_admin

            firebase_admin.delete_app(self.firebase_app)
            self.firebase_app = None
            logger.info("Firebase app released")

    def __enter__(self) -> "BackOffice":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
