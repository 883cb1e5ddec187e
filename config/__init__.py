"""Configuration helpers for the downtime tracker."""

# Runtime configuration that deployments can adjust without touching the
# application logic.  ``supabase_schema`` maps logical table and column names
# onto the Supabase project in use.
