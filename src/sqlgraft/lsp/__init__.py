"""Language server for entity schema files."""
