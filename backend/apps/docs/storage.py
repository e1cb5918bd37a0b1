"""
Blob storage for uploaded documents.

Files live on the local filesystem under UPLOAD_ROOT (a mounted volume
in deployment). Keys are flat names of the form {document_id}{ext}.
"""
import logging
from pathlib import Path
from typing import Optional

from django.conf import settings

from apps.core.errors import NotFoundError, StorageError

logger = logging.getLogger(__name__)


class FileStorage:
    """
    Simple file storage for uploaded documents.
    
    Files are stored at: {UPLOAD_ROOT}/{key}
    """
    
    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root or settings.UPLOAD_ROOT)
        self._ensure_root_exists()
    
    def _ensure_root_exists(self) -> None:
        """Create the upload root directory if it doesn't exist."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create upload root {self.root}: {e}")
            raise StorageError(f"Cannot create upload directory: {e}")
    
    def _resolve(self, key: str) -> Path:
        # Keys are generated server-side, but never let one escape the root.
        if not key or Path(key).name != key:
            raise StorageError(f"Invalid storage key: {key!r}")
        return self.root / key
    
    def save(self, key: str, data: bytes) -> str:
        """
        Write bytes under a key.
        
        Args:
            key: Blob key (e.g., 'abc123.pdf')
            data: File content
            
        Returns:
            The key, to be stored as Document.storage_path
            
        Raises:
            StorageError: If the file cannot be written
        """
        filepath = self._resolve(key)
        
        try:
            filepath.write_bytes(data)
            logger.info(f"Saved file: {key} ({len(data)} bytes)")
            return key
        except OSError as e:
            logger.error(f"Failed to save file {key}: {e}")
            raise StorageError(f"Failed to save file: {e}")
    
    def get_path(self, key: str) -> Path:
        """
        Get the full filesystem path for a stored file.
        
        Raises:
            NotFoundError: If nothing is stored under the key
        """
        filepath = self._resolve(key)
        if not filepath.exists():
            raise NotFoundError("Document content not found", code='CONTENT_NOT_FOUND')
        return filepath
    
    def read(self, key: str) -> bytes:
        """Read the full content stored under a key."""
        filepath = self.get_path(key)
        try:
            return filepath.read_bytes()
        except OSError as e:
            logger.error(f"Failed to read file {key}: {e}")
            raise StorageError(f"Failed to read file: {e}")
    
    def exists(self, key: str) -> bool:
        """Check if a file exists in storage."""
        return self._resolve(key).exists()
    
    def delete(self, key: str) -> bool:
        """
        Delete a file from storage.
        
        Args:
            key: Blob key to delete
            
        Returns:
            True if deleted, False if file didn't exist
        """
        filepath = self._resolve(key)
        try:
            if filepath.exists():
                filepath.unlink()
                logger.info(f"Deleted file: {key}")
                return True
            return False
        except OSError as e:
            logger.error(f"Failed to delete file {key}: {e}")
            raise StorageError(f"Failed to delete file: {e}")


# Singleton instance
_storage: Optional[FileStorage] = None


def get_storage() -> FileStorage:
    """Get the file storage instance (lazy initialization)."""
    global _storage
    if _storage is None or _storage.root != Path(settings.UPLOAD_ROOT):
        _storage = FileStorage()
    return _storage
