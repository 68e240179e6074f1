"""
JSON file persistence for decks, carts, orders and discount codes.

Documents are stored one file per document under a collection directory,
mirroring the document-database layout the storefront uses. Writes are
last-write-wins; there is no transactional guarantee.
"""

import json
import logging
import os
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional


class StorageError(Exception):
    """Raised when the persistence layer cannot read or write a document."""
    pass


class JsonDocumentStore:
    """Stores JSON documents as files grouped in collection directories."""

    def __init__(self, data_dir: Optional[Path] = None):
        """
        Initialize the document store.

        Args:
            data_dir: Root directory for all collections (defaults to ~/.mtg_deck_engine/data)
        """
        self.logger = logging.getLogger(__name__)
        self.data_dir = Path(data_dir) if data_dir else Path.home() / '.mtg_deck_engine' / 'data'

        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create data directory {self.data_dir}: {e}")

    def _document_path(self, collection: str, doc_id: str) -> Path:
        safe_id = "".join(c for c in doc_id if c.isalnum() or c in "-_.")
        if not safe_id or safe_id != doc_id:
            raise StorageError(f"Invalid document id: {doc_id!r}")
        return self.data_dir / collection / f"{safe_id}.json"

    def put(self, collection: str, doc_id: str, document: Dict[str, Any]) -> None:
        """
        Write a document, replacing any previous version.

        Raises:
            StorageError: If the document cannot be written
        """
        path = self._document_path(collection, doc_id)
        tmp_path = path.with_suffix('.json.tmp')

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, path)
        except (OSError, TypeError) as e:
            raise StorageError(f"Failed to save {collection}/{doc_id}: {e}")

        self.logger.debug(f"Saved document {collection}/{doc_id}")

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """
        Read a document.

        Returns:
            The document, or None if it does not exist

        Raises:
            StorageError: If the document exists but cannot be read
        """
        path = self._document_path(collection, doc_id)
        if not path.exists():
            return None

        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to load {collection}/{doc_id}: {e}")

    def delete(self, collection: str, doc_id: str) -> bool:
        """
        Delete a document.

        Returns:
            True if a document was deleted
        """
        path = self._document_path(collection, doc_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete {collection}/{doc_id}: {e}")

        self.logger.debug(f"Deleted document {collection}/{doc_id}")
        return True

    def query(self, collection: str, **filters: Any) -> List[Dict[str, Any]]:
        """
        List documents of a collection whose fields equal the given filters.

        Args:
            collection: Collection name
            **filters: Field/value pairs every returned document must match

        Returns:
            Matching documents ordered by file name
        """
        collection_dir = self.data_dir / collection
        if not collection_dir.exists():
            return []

        documents = []
        for path in sorted(collection_dir.glob("*.json")):
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    document = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise StorageError(f"Failed to load {collection}/{path.stem}: {e}")

            if all(document.get(key) == value for key, value in filters.items()):
                documents.append(document)

        return documents


class DeckStore:
    """Persistence collaborator for deck snapshots, keyed by owning user."""

    COLLECTION = "decks"

    def __init__(self, store: JsonDocumentStore):
        self.store = store
        self.logger = logging.getLogger(__name__)

    def save(self, user_id: str, snapshot: Dict[str, Any]) -> str:
        """
        Save a deck snapshot for a user.

        A snapshot without a deck id is stored as a new deck.

        Args:
            user_id: Owning user identity
            snapshot: Deck snapshot (see Deck.to_snapshot)

        Returns:
            The deck id the snapshot was stored under
        """
        deck_id = snapshot.get('deck_id') or uuid.uuid4().hex
        document = dict(snapshot)
        document['deck_id'] = deck_id
        document['user_id'] = user_id
        document['updated_at'] = time.time()

        self.store.put(self.COLLECTION, deck_id, document)
        self.logger.info(f"Saved deck '{document.get('name')}' ({deck_id}) for user {user_id}")
        return deck_id

    def load(self, user_id: str) -> List[Dict[str, Any]]:
        """Get every deck snapshot owned by a user."""
        return self.store.query(self.COLLECTION, user_id=user_id)

    def get(self, deck_id: str) -> Optional[Dict[str, Any]]:
        """Get a single deck snapshot by id."""
        return self.store.get(self.COLLECTION, deck_id)

    def delete(self, deck_id: str) -> bool:
        """Delete a deck snapshot."""
        return self.store.delete(self.COLLECTION, deck_id)
