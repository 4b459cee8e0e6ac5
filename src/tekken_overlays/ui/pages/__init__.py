"""Operator control pages and overlay views."""
