"""Domain core — ORM models, field definitions, service contracts, and services."""
