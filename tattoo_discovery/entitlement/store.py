"""Document store with per-document atomic read-modify-write.

Purpose of this abstraction:
    The ledger and the design repository need only a handful of document
    operations: get, set/merge, update, atomic (optionally conditional)
    increment, add with a generated ID, and an equality query. Keeping them
    behind `DocumentStore` lets a managed document database replace the local
    implementations without touching the ledger.

Implementations:
    - `MemoryDocumentStore`: process-local dict guarded by a re-entrant lock.
    - `JsonFileDocumentStore`: same state mirrored to one JSON file after every
      write. The file is written to a temporary path and swapped in with
      `os.replace`, so a crash never leaves a half-written store.

Concurrency:
    Every operation holds the store lock for its full read-modify-write, so a
    conditional increment is atomic with respect to any other operation on the
    same store instance.
"""

import copy
import json
import logging
import os
import tempfile
import threading
import uuid
from abc import ABC, abstractmethod


logger = logging.getLogger(__name__)


class DocumentNotFound(KeyError):
    """The addressed document does not exist."""


class ConditionFailed(Exception):
    """A conditional write found the document in a state it does not accept."""


class DocumentStore(ABC):
    """Minimal document-database interface."""

    @abstractmethod
    def get(self, collection, doc_id):
        """Return a copy of the document or `None`."""

    @abstractmethod
    def set(self, collection, doc_id, data, merge=False):
        """Create or overwrite a document; `merge=True` keeps unspecified fields."""

    @abstractmethod
    def update(self, collection, doc_id, changes):
        """Merge `changes` into an existing document."""

    @abstractmethod
    def increment(self, collection, doc_id, field, amount=1, *, limit_field=None, require=None, extra=None):
        """Atomically add `amount` to a numeric field.

        Args:
            limit_field: When given, refuse with `ConditionFailed` unless the
                incremented value stays within `doc[limit_field]`.
            require: Field/value pairs that must match before incrementing.
            extra: Fields written together with the increment.

        Returns:
            Copy of the updated document.
        """

    @abstractmethod
    def add(self, collection, data) -> str:
        """Insert a document under a generated ID and return the ID."""

    @abstractmethod
    def query(self, collection, field, value) -> list:
        """Return copies of documents whose `field` equals `value`, with an `id` key."""


class MemoryDocumentStore(DocumentStore):
    def __init__(self):
        self._lock = threading.RLock()
        self._collections = {}

    def _collection(self, name):
        return self._collections.setdefault(name, {})

    def _flush(self):
        """Persist state after a write; in-memory stores keep nothing."""

    def get(self, collection, doc_id):
        with self._lock:
            doc = self._collection(collection).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def set(self, collection, doc_id, data, merge=False):
        with self._lock:
            docs = self._collection(collection)
            if merge and doc_id in docs:
                docs[doc_id].update(copy.deepcopy(data))
            else:
                docs[doc_id] = copy.deepcopy(data)
            self._flush()

    def update(self, collection, doc_id, changes):
        with self._lock:
            docs = self._collection(collection)
            if doc_id not in docs:
                raise DocumentNotFound(f"{collection}/{doc_id}")
            docs[doc_id].update(copy.deepcopy(changes))
            self._flush()

    def increment(self, collection, doc_id, field, amount=1, *, limit_field=None, require=None, extra=None):
        with self._lock:
            doc = self._collection(collection).get(doc_id)
            if doc is None:
                raise DocumentNotFound(f"{collection}/{doc_id}")

            for key, expected in (require or {}).items():
                if doc.get(key) != expected:
                    raise ConditionFailed(f"{collection}/{doc_id}: {key} is {doc.get(key)!r}")

            new_value = doc.get(field, 0) + amount
            if limit_field is not None and new_value > doc.get(limit_field, 0):
                raise ConditionFailed(
                    f"{collection}/{doc_id}: {field} would exceed {limit_field}"
                )

            doc[field] = new_value
            if extra:
                doc.update(copy.deepcopy(extra))
            self._flush()
            return copy.deepcopy(doc)

    def add(self, collection, data) -> str:
        doc_id = uuid.uuid4().hex
        with self._lock:
            self._collection(collection)[doc_id] = copy.deepcopy(data)
            self._flush()
        return doc_id

    def query(self, collection, field, value) -> list:
        with self._lock:
            return [
                {**copy.deepcopy(doc), "id": doc_id}
                for doc_id, doc in self._collection(collection).items()
                if doc.get(field) == value
            ]


class JsonFileDocumentStore(MemoryDocumentStore):
    """`MemoryDocumentStore` mirrored to `<data_dir>/<filename>`."""

    def __init__(self, data_dir, filename="documents.json"):
        super().__init__()
        self.path = os.path.join(data_dir, filename)
        os.makedirs(data_dir, exist_ok=True)
        self._load()

    def _load(self):
        if not os.path.exists(self.path):
            return
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Document store file {self.path} is not a JSON object")
        self._collections = data
        logger.info("Loaded document store from %s", self.path)

    def _flush(self):
        directory = os.path.dirname(self.path) or "."
        fd, tmp_path = tempfile.mkstemp(prefix=".documents-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._collections, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
