"""Cache and remote storage layers."""
