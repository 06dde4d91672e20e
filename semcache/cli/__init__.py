"""Command-line interface for semcache."""
