"""Blueprints package - JSON API endpoints."""
