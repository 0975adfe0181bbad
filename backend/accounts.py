from dataclasses import dataclass, fields
from datetime import datetime, timezone
from typing import Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from errors import ConflictError

STATUS_ACTIVE = "Active"
STATUS_INACTIVE = "Inactive"
STATUS_SUSPENDED = "Suspended"
ACCOUNT_STATUSES = (STATUS_ACTIVE, STATUS_INACTIVE, STATUS_SUSPENDED)

DUPLICATE_EMAIL_MESSAGE = "Email is already registered"


def utcnow() -> datetime:
    # Mongo hands datetimes back naive, so compare in naive UTC throughout.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_object_id(value) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def serialize_document(document) -> Dict[str, object]:
    if not document:
        return {}

    serialized: Dict[str, object] = {}
    for key, value in document.items():
        if isinstance(value, ObjectId):
            serialized[key] = str(value)
        elif isinstance(value, datetime):
            serialized[key] = value.isoformat() + "Z"
        elif isinstance(value, list):
            serialized[key] = [
                str(item) if isinstance(item, ObjectId) else item for item in value
            ]
        else:
            serialized[key] = value
    return serialized


@dataclass
class AccountPatch:
    """Self-service profile changes; ``None`` means leave the field alone."""

    name: Optional[str] = None
    email: Optional[str] = None
    mobile: Optional[str] = None
    password: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Optional[Dict]) -> "AccountPatch":
        payload = payload if isinstance(payload, dict) else {}
        values = {}
        for field_ in fields(cls):
            raw = payload.get(field_.name)
            if raw is None:
                continue
            text = str(raw) if field_.name == "password" else str(raw).strip()
            if text:
                values[field_.name] = text
        return cls(**values)

    def is_empty(self) -> bool:
        return all(getattr(self, field_.name) is None for field_ in fields(self))


class AccountStore:
    def __init__(self, collection):
        self.collection = collection

    def ensure_indexes(self):
        self.collection.create_index("email", unique=True)

    def create(self, name: str, email: str, password_hash: str) -> Dict:
        # The unique index is the source of truth; this lookup only gives
        # the common case a clean error.
        if self.find_by_email(email):
            raise ConflictError(DUPLICATE_EMAIL_MESSAGE)

        timestamp = utcnow()
        document = {
            "name": name,
            "email": email,
            "password": password_hash,
            "avatar": "",
            "mobile": None,
            "refresh_token": "",
            "verify_email": False,
            "last_login_date": None,
            "status": STATUS_ACTIVE,
            "forgot_password_otp": None,
            "forgot_password_expiry": None,
            "created_at": timestamp,
            "updated_at": timestamp,
        }
        try:
            insert_result = self.collection.insert_one(document)
        except DuplicateKeyError as exc:
            raise ConflictError(DUPLICATE_EMAIL_MESSAGE) from exc

        document["_id"] = insert_result.inserted_id
        return document

    def find_by_email(self, email: str) -> Optional[Dict]:
        if not email:
            return None
        return self.collection.find_one({"email": email})

    def find_by_id(self, account_id) -> Optional[Dict]:
        object_id = to_object_id(account_id)
        if object_id is None:
            return None
        return self.collection.find_one({"_id": object_id})

    def update_fields(self, account_id, updates: Dict) -> Optional[Dict]:
        """Apply ``updates`` with a single ``$set`` and return the new document.

        Returns ``None`` when no account matches.
        """
        object_id = to_object_id(account_id)
        if object_id is None:
            return None

        changes = dict(updates)
        changes["updated_at"] = utcnow()
        try:
            return self.collection.find_one_and_update(
                {"_id": object_id},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as exc:
            raise ConflictError(DUPLICATE_EMAIL_MESSAGE) from exc

    def count(self, query: Optional[Dict] = None) -> int:
        return self.collection.count_documents(query or {})
