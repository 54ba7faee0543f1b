"""Framework-agnostic domain types for hospitalization charts."""
