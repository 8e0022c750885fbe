"""Registered reference tables for estimation and scoring."""
