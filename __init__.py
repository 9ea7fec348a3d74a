"""
IFSC Bank Details Enricher

This package provides an API that reads an uploaded Excel file, looks up
the bank branch behind every row's IFSC code and offers the enriched rows
page by page and as a downloadable Excel file.

Key modules:
- main.py: FastAPI application with API endpoints
- session.py: Per-user upload/enrich/download state
- ifsc_enrichment.py: Ingestion, validation, enrichment, pagination and export
- ifsc_lookup.py: Async client for the IFSC lookup API
- config.py: Settings read from the environment
- utils/result.py: Result pattern implementation for error handling
"""
