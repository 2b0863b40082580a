"""lore — chat + repository knowledge pipeline with vector search."""
