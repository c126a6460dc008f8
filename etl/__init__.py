# WORKFLOW: ETL package for tariff document ingestion, validation and loading.
# Used by: Pipeline runner, orchestrator, API extraction router, scripts
# Modules include:
# 1. chunker.py - Split document text into overlapping, boundary-aware chunks
# 2. ingest_table.py - Read CSV/XLSX/ZIP tariff exports into candidates or text
# 3. rate_parser.py - Parse duty rates ("10", "2,5 %", "-", "ex")
# 4. validators.py - Normalize codes and validate candidates into final records
# 5. load_records.py - Upsert final records into the tariff table
#
# ETL flow: Document -> Chunks / Sheets -> (LLM extraction) -> Validate -> Merge -> Load

"""
ETL package for tariff document ingestion and loading.
"""
