"""Language-model stages: structuring, confidence, categorization, redaction."""
