"""Utilities for semcache."""
