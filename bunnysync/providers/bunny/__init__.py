from .storage_client import BunnyStorageClient, StorageObject

__all__ = ["BunnyStorageClient", "StorageObject"]
