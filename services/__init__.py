"""Import, transcript, storage and scheduling services."""
