# BigQuery table: <gcp_project_id>.user_device_permission.permissions
# This file documents the expected warehouse schema
# Rows are managed by administrators; this service only reads them

"""
Expected BigQuery table structure:
- email: STRING (not null) - researcher the grant belongs to
- owner: STRING (nullable) - who owns the experiment data
- mac_address: STRING (nullable) - device the grant refers to
- experiment: STRING (nullable) - experiment name; may be stale on admin rows
- role: STRING ('admin' | 'read')
- valid_from: TIMESTAMP (nullable)
- valid_until: TIMESTAMP (nullable, null = never expires)
- created_at: TIMESTAMP
- table_id: STRING - '<project>.<dataset>.<table>' (or '<project>.<dataset>' for dataset-wide admin grants)
"""

GRANT_COLUMNS = [
    "email",
    "owner",
    "mac_address",
    "experiment",
    "role",
    "valid_from",
    "valid_until",
    "created_at",
    "table_id",
]
