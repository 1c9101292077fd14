"""Retrieval: embedding indexer, similarity retriever and answer synthesis."""
