"""
Memory subsystems: the in-memory vector cache (``vector``), embedding
generation (``embeddings``) and the durable backing store (``store``).
"""
