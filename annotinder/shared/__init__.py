"""Records and exceptions shared across the annotation data model."""
