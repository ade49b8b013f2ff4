"""Database schema DDL for the PostgreSQL document store."""

# field_types maps top-level data keys to their original type ("timestamp")
DOCUMENTS_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS documents (
  collection   TEXT NOT NULL,
  id           TEXT NOT NULL,
  data         JSONB NOT NULL,
  field_types  JSONB NOT NULL DEFAULT '{}'::jsonb,
  created_at   TIMESTAMPTZ NOT NULL DEFAULT now(),
  PRIMARY KEY (collection, id)
);

-- Runnable-job lookup
CREATE INDEX IF NOT EXISTS idx_documents_status
ON documents (collection, (data->>'status'));

-- Cleanup sweep
CREATE INDEX IF NOT EXISTS idx_documents_completed_at
ON documents (collection, (data->>'completed_at'))
WHERE data->>'status' IN ('completed', 'failed');
"""
