from typing import Dict, List, Optional

from pymongo import DESCENDING, ReturnDocument

from accounts import serialize_document, to_object_id, utcnow
from errors import ConflictError, NotFoundError, ValidationError


def clean_text(value) -> str:
    return str(value or "").strip()


def clean_category_ids(value) -> List:
    if isinstance(value, (str, bytes)) or value is None:
        value = [value] if value else []
    object_ids = []
    for item in value:
        if isinstance(item, dict):
            item = item.get("_id")
        object_id = to_object_id(item)
        if object_id is None:
            raise ValidationError("Invalid category identifier.")
        object_ids.append(object_id)
    return object_ids


class CatalogService:
    """Categories and subcategories.

    A subcategory stores the ids of the categories it belongs to; a category
    cannot be deleted while any subcategory still points at it.
    """

    def __init__(self, db, logger):
        self.categories = db.categories
        self.subcategories = db.subcategories
        self.logger = logger

    # Categories

    def add_category(self, name, image) -> Dict:
        name, image = clean_text(name), clean_text(image)
        if not name or not image:
            raise ValidationError("Provide both name and image for the category")

        if self.categories.find_one({"name": name}):
            raise ConflictError("Category with this name already exists", status_code=409)

        timestamp = utcnow()
        document = {"name": name, "image": image, "created_at": timestamp, "updated_at": timestamp}
        document["_id"] = self.categories.insert_one(document).inserted_id
        self.logger.info("Created category %s", document["_id"])
        return document

    def list_categories(self) -> List[Dict]:
        return list(self.categories.find().sort("created_at", DESCENDING))

    def update_category(self, category_id, name=None, image=None) -> Dict:
        object_id = to_object_id(category_id)
        if object_id is None:
            raise ValidationError("Provide a valid category id")

        updates = {}
        if clean_text(name):
            updates["name"] = clean_text(name)
        if clean_text(image):
            updates["image"] = clean_text(image)
        if not updates:
            raise ValidationError("Provide a name or image to update")

        if "name" in updates and self.categories.find_one(
            {"name": updates["name"], "_id": {"$ne": object_id}}
        ):
            raise ConflictError("Category with this name already exists", status_code=409)

        updates["updated_at"] = utcnow()
        updated = self.categories.find_one_and_update(
            {"_id": object_id}, {"$set": updates}, return_document=ReturnDocument.AFTER
        )
        if not updated:
            raise NotFoundError("Category not found")
        return updated

    def delete_category(self, category_id) -> None:
        object_id = to_object_id(category_id)
        if object_id is None:
            raise ValidationError("Provide a valid category id")

        linked = self.subcategories.count_documents({"category": object_id})
        if linked:
            raise ConflictError(
                "Category is already used in a subcategory, can't delete",
                status_code=409,
            )

        result = self.categories.delete_one({"_id": object_id})
        if result.deleted_count == 0:
            raise NotFoundError("Category not found")
        self.logger.info("Deleted category %s", object_id)

    # Subcategories

    def ensure_categories_exist(self, category_ids: List) -> None:
        found = self.categories.count_documents({"_id": {"$in": category_ids}})
        if found != len(set(category_ids)):
            raise NotFoundError("Category not found")

    def add_subcategory(self, name, image, category) -> Dict:
        name, image = clean_text(name), clean_text(image)
        category_ids = clean_category_ids(category)
        if not name or not image or not category_ids:
            raise ValidationError("Provide name, image, and category")

        self.ensure_categories_exist(category_ids)

        timestamp = utcnow()
        document = {
            "name": name,
            "image": image,
            "category": category_ids,
            "created_at": timestamp,
            "updated_at": timestamp,
        }
        document["_id"] = self.subcategories.insert_one(document).inserted_id
        self.logger.info("Created subcategory %s", document["_id"])
        return document

    def list_subcategories(self) -> List[Dict]:
        documents = list(self.subcategories.find().sort("created_at", DESCENDING))
        referenced = {oid for document in documents for oid in document.get("category", [])}
        categories = {
            category["_id"]: category
            for category in self.categories.find({"_id": {"$in": list(referenced)}})
        }
        for document in documents:
            document["category"] = [
                categories[oid] for oid in document.get("category", []) if oid in categories
            ]
        return documents

    def update_subcategory(self, subcategory_id, name=None, image=None, category=None) -> Dict:
        object_id = to_object_id(subcategory_id)
        if object_id is None:
            raise ValidationError("Provide a valid subcategory id")

        updates: Dict[str, object] = {}
        if clean_text(name):
            updates["name"] = clean_text(name)
        if clean_text(image):
            updates["image"] = clean_text(image)
        if category is not None:
            category_ids = clean_category_ids(category)
            if not category_ids:
                raise ValidationError("Provide at least one category")
            self.ensure_categories_exist(category_ids)
            updates["category"] = category_ids
        if not updates:
            raise ValidationError("Provide a name, image or category to update")

        updates["updated_at"] = utcnow()
        updated = self.subcategories.find_one_and_update(
            {"_id": object_id}, {"$set": updates}, return_document=ReturnDocument.AFTER
        )
        if not updated:
            raise NotFoundError("Subcategory not found")
        return updated

    def delete_subcategory(self, subcategory_id) -> None:
        object_id = to_object_id(subcategory_id)
        if object_id is None:
            raise ValidationError("Provide a valid subcategory id")

        result = self.subcategories.delete_one({"_id": object_id})
        if result.deleted_count == 0:
            raise NotFoundError("Subcategory not found")
        self.logger.info("Deleted subcategory %s", object_id)


def serialize_subcategory(document: Optional[Dict]) -> Dict:
    if not document:
        return {}
    serialized = serialize_document({k: v for k, v in document.items() if k != "category"})
    serialized["category"] = [
        serialize_document(item) if isinstance(item, dict) else str(item)
        for item in document.get("category", [])
    ]
    return serialized
