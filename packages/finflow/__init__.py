"""Bank statement ingestion, categorization and spending analytics."""
