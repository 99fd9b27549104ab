"""Service layer wrapping the upstream drama API."""
