"""Store and cache adapters used by the repository layer."""
