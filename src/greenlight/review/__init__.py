"""Draft review: approval, rejection and batch approval of AI-structured drafts."""
