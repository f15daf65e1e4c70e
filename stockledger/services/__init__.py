"""Services package - business logic and transactions."""
